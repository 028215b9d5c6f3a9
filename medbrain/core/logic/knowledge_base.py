"""
Reference Knowledge Snapshot

Immutable bundle of biomarker references, metric definitions and protocol
definitions. A snapshot is loaded once per workflow run and passed into the
evaluator explicitly; the evaluator never reads global tables.

`KnowledgeSnapshot.default()` returns the curated seed tables below.
Ranges are functional (optimal) ranges from the integrative-medicine
literature cited in `source_ref`, bracketed by conventional lab ranges.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .types import (
    BiomarkerReference,
    MetricDefinition,
    ProtocolDefinition,
    ProtocolType,
)


@dataclass(frozen=True)
class KnowledgeSnapshot:
    """Read-only knowledge tables used by a single evaluation run."""
    references: Tuple[BiomarkerReference, ...] = field(default_factory=tuple)
    metrics: Tuple[MetricDefinition, ...] = field(default_factory=tuple)
    protocols: Tuple[ProtocolDefinition, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Accept lists from callers but store tuples
        object.__setattr__(self, "references", tuple(self.references))
        object.__setattr__(self, "metrics", tuple(self.metrics))
        object.__setattr__(self, "protocols", tuple(self.protocols))

    def reference_for(self, slug: str) -> Optional[BiomarkerReference]:
        for ref in self.references:
            if ref.slug == slug:
                return ref
        return None

    @property
    def reference_map(self) -> Dict[str, BiomarkerReference]:
        return {ref.slug: ref for ref in self.references}

    @classmethod
    def default(cls) -> "KnowledgeSnapshot":
        return cls(
            references=DEFAULT_REFERENCES,
            metrics=DEFAULT_METRICS,
            protocols=DEFAULT_PROTOCOLS,
        )


# ── Seed: biomarker references ───────────────────────────────────────────────
DEFAULT_REFERENCES: Tuple[BiomarkerReference, ...] = (
    # Metabolic
    BiomarkerReference(
        slug="glicemia", name="Glicemia de jejum", unit="mg/dL",
        optimal_min=75, optimal_max=90, lab_min=70, lab_max=99,
        clinical_insight="Fasting glucose above 90 mg/dL already signals early loss of glycaemic flexibility.",
        metaphor="Sugar in the bloodstream is like traffic on a highway: a little keeps the city moving, too much jams every exit.",
        source_ref="ADA Standards of Care 2024",
    ),
    BiomarkerReference(
        slug="insulina", name="Insulina de jejum", unit="µUI/mL",
        optimal_min=2, optimal_max=6, lab_min=2, lab_max=25,
        clinical_insight="Fasting insulin rises years before glucose does; it is the earliest marker of insulin resistance.",
        metaphor="Insulin is the key that opens the cell door; needing more keys means the lock is getting rusty.",
        source_ref="Kraft, Diabetes Epidemic & You",
    ),
    BiomarkerReference(
        slug="hba1c", name="Hemoglobina glicada (HbA1c)", unit="%",
        optimal_min=4.6, optimal_max=5.3, lab_min=4.0, lab_max=5.6,
        clinical_insight="HbA1c reflects average glucose exposure over the last 90 days.",
        source_ref="ADA Standards of Care 2024",
    ),
    # Lipids
    BiomarkerReference(
        slug="colesterol_total", name="Colesterol total", unit="mg/dL",
        optimal_min=160, optimal_max=200, lab_min=None, lab_max=240,
        source_ref="SBC Dyslipidemia Guideline 2017",
    ),
    BiomarkerReference(
        slug="hdl", name="HDL colesterol", unit="mg/dL",
        optimal_min=55, optimal_max=90, lab_min=40, lab_max=None,
        clinical_insight="HDL carries cholesterol back to the liver; low values raise cardiovascular risk.",
        metaphor="HDL is the garbage truck that collects excess cholesterol from the arteries.",
        source_ref="SBC Dyslipidemia Guideline 2017",
    ),
    BiomarkerReference(
        slug="ldl", name="LDL colesterol", unit="mg/dL",
        optimal_min=None, optimal_max=100, lab_min=None, lab_max=160,
        clinical_insight="LDL risk depends on particle number and oxidation, read it alongside triglycerides and HDL.",
        source_ref="SBC Dyslipidemia Guideline 2017",
    ),
    BiomarkerReference(
        slug="triglicerideos", name="Triglicerídeos", unit="mg/dL",
        optimal_min=None, optimal_max=100, lab_min=None, lab_max=150,
        clinical_insight="High triglycerides usually reflect excess refined carbohydrate and alcohol intake.",
        source_ref="SBC Dyslipidemia Guideline 2017",
    ),
    # Thyroid
    BiomarkerReference(
        slug="tsh", name="TSH", unit="µUI/mL",
        optimal_min=1.0, optimal_max=2.2, lab_min=0.4, lab_max=4.0,
        clinical_insight="TSH above 2.5 may indicate early hypothyroidism even inside the lab range.",
        metaphor="TSH is the brain shouting at the thyroid; the louder it shouts, the less the thyroid is listening.",
        source_ref="AACE Thyroid Guidelines",
    ),
    BiomarkerReference(
        slug="t4_livre", name="T4 livre", unit="ng/dL",
        optimal_min=1.1, optimal_max=1.5, lab_min=0.7, lab_max=1.8,
        source_ref="AACE Thyroid Guidelines",
    ),
    BiomarkerReference(
        slug="t3_livre", name="T3 livre", unit="pg/mL",
        optimal_min=3.0, optimal_max=4.0, lab_min=2.3, lab_max=4.2,
        clinical_insight="Free T3 is the active thyroid hormone; low values with normal TSH suggest poor conversion.",
        source_ref="AACE Thyroid Guidelines",
    ),
    # Liver
    BiomarkerReference(
        slug="tgo", name="TGO (AST)", unit="U/L",
        optimal_min=10, optimal_max=26, lab_min=None, lab_max=40,
        source_ref="AASLD Practice Guidance",
    ),
    BiomarkerReference(
        slug="tgp", name="TGP (ALT)", unit="U/L",
        optimal_min=10, optimal_max=26, lab_min=None, lab_max=41,
        clinical_insight="ALT above 26 U/L is associated with hepatic fat accumulation.",
        source_ref="AASLD Practice Guidance",
    ),
    BiomarkerReference(
        slug="gama_gt", name="Gama GT", unit="U/L",
        optimal_min=None, optimal_max=25, lab_min=None, lab_max=60,
        clinical_insight="GGT is a sensitive marker of oxidative stress and glutathione depletion.",
        source_ref="AASLD Practice Guidance",
    ),
    # Kidney
    BiomarkerReference(
        slug="creatinina", name="Creatinina", unit="mg/dL",
        optimal_min=0.7, optimal_max=1.1, lab_min=0.6, lab_max=1.3,
        source_ref="KDIGO 2012",
    ),
    BiomarkerReference(
        slug="acido_urico", name="Ácido úrico", unit="mg/dL",
        optimal_min=3.0, optimal_max=5.5, lab_min=2.5, lab_max=7.0,
        source_ref="ACR Gout Guideline 2020",
    ),
    # Hematology / iron
    BiomarkerReference(
        slug="hemoglobina", name="Hemoglobina", unit="g/dL",
        optimal_min=13.5, optimal_max=15.5, lab_min=12.0, lab_max=17.5,
        source_ref="WHO Haemoglobin Concentrations 2011",
    ),
    BiomarkerReference(
        slug="ferritina", name="Ferritina", unit="ng/mL",
        optimal_min=50, optimal_max=150, lab_min=15, lab_max=300,
        clinical_insight="Ferritin below 50 ng/mL depletes iron stores and commonly causes fatigue and hair loss.",
        metaphor="Ferritin is the iron pantry; an empty pantry runs out long before the table is bare.",
        source_ref="WHO Ferritin Guideline 2020",
    ),
    # Inflammation
    BiomarkerReference(
        slug="pcr_us", name="PCR ultrassensível", unit="mg/L",
        optimal_min=None, optimal_max=1.0, lab_min=None, lab_max=3.0,
        clinical_insight="hs-CRP above 1 mg/L indicates low-grade chronic inflammation.",
        source_ref="AHA/CDC Scientific Statement 2003",
    ),
    BiomarkerReference(
        slug="homocisteina", name="Homocisteína", unit="µmol/L",
        optimal_min=5, optimal_max=8, lab_min=None, lab_max=15,
        clinical_insight="Elevated homocysteine suggests methylation deficit (B12, folate, B6).",
        source_ref="Refsum et al., Clin Chem 2004",
    ),
    # Vitamins
    BiomarkerReference(
        slug="vitamina_d3", name="Vitamina D (25-OH)", unit="ng/mL",
        optimal_min=40, optimal_max=80, lab_min=20, lab_max=100,
        clinical_insight="Vitamin D below 40 ng/mL impairs immune modulation and bone metabolism.",
        metaphor="Vitamin D is the conductor of an orchestra of more than 200 genes.",
        source_ref="Endocrine Society Clinical Practice Guideline 2011",
    ),
    BiomarkerReference(
        slug="vitamina_b12", name="Vitamina B12", unit="pg/mL",
        optimal_min=500, optimal_max=900, lab_min=200, lab_max=1100,
        clinical_insight="B12 below 500 pg/mL may already cause neurological symptoms.",
        source_ref="Stabler, NEJM 2013",
    ),
    # Hormones
    BiomarkerReference(
        slug="testosterona", name="Testosterona total", unit="ng/dL",
        optimal_min=500, optimal_max=900, lab_min=264, lab_max=916,
        source_ref="Endocrine Society Testosterone Guideline 2018",
    ),
    BiomarkerReference(
        slug="cortisol", name="Cortisol matinal", unit="µg/dL",
        optimal_min=10, optimal_max=18, lab_min=5, lab_max=25,
        source_ref="Endocrine Society Adrenal Guideline 2016",
    ),
    # Body composition
    BiomarkerReference(
        slug="imc", name="Índice de massa corporal", unit="kg/m²",
        optimal_min=18.5, optimal_max=24.9, lab_min=None, lab_max=30,
        source_ref="WHO BMI Classification",
    ),
    BiomarkerReference(
        slug="gordura_visceral", name="Nível de gordura visceral", unit=None,
        optimal_min=None, optimal_max=9, lab_min=None, lab_max=15,
        source_ref="InBody Result Sheet Interpretation",
    ),
)


# ── Seed: derived metrics ────────────────────────────────────────────────────
DEFAULT_METRICS: Tuple[MetricDefinition, ...] = (
    MetricDefinition(
        slug="homa_ir_calc", name="HOMA-IR",
        formula="({glicemia} * {insulina}) / 405",
        target_min=None, target_max=1.5,
        risk_insight="HOMA-IR above 1.5 indicates insulin resistance; above 2.5 it is clinically significant.",
    ),
    MetricDefinition(
        slug="relacao_tg_hdl", name="Relação Triglicerídeos/HDL",
        formula="{triglicerideos} / {hdl}",
        target_min=None, target_max=2.0,
        risk_insight="TG/HDL above 2 is a surrogate of small dense LDL particles and insulin resistance.",
    ),
    MetricDefinition(
        slug="relacao_ldl_hdl", name="Relação LDL/HDL",
        formula="{ldl} / {hdl}",
        target_min=None, target_max=2.5,
        risk_insight="LDL/HDL above 2.5 increases atherogenic risk.",
    ),
    MetricDefinition(
        slug="colesterol_nao_hdl_calc", name="Colesterol não-HDL",
        formula="{colesterol_total} - {hdl}",
        target_min=None, target_max=130,
        risk_insight="Non-HDL cholesterol captures every atherogenic lipoprotein.",
    ),
    MetricDefinition(
        slug="relacao_tgo_tgp", name="Relação TGO/TGP (De Ritis)",
        formula="{tgo} / {tgp}",
        target_min=0.8, target_max=1.2,
        risk_insight="A De Ritis ratio above 2 suggests alcoholic liver injury; below 1 suggests hepatic steatosis.",
    ),
)


# ── Seed: protocols ──────────────────────────────────────────────────────────
DEFAULT_PROTOCOLS: Tuple[ProtocolDefinition, ...] = (
    ProtocolDefinition(
        id="vitamin_d_repletion", type=ProtocolType.SUPPLEMENT,
        title="Vitamin D3 repletion",
        description="Supplement vitamin D3 with K2 taken with the largest meal of the day. Re-test in 90 days.",
        trigger_condition="vitamina_d3 < 40",
        dosage="5,000 to 10,000 IU D3 + 100 mcg K2 (MK-7) daily",
        source_ref="Endocrine Society Clinical Practice Guideline 2011",
    ),
    ProtocolDefinition(
        id="iron_stores_repletion", type=ProtocolType.SUPPLEMENT,
        title="Iron stores repletion",
        description="Iron bisglycinate on alternate days away from coffee, tea and calcium, paired with vitamin C.",
        trigger_condition="ferritina < 50",
        dosage="30 to 60 mg elemental iron every other day",
        source_ref="Stoffel et al., Lancet Haematology 2017",
    ),
    ProtocolDefinition(
        id="b12_methylation_support", type=ProtocolType.SUPPLEMENT,
        title="Methylation support",
        description="Active B12 with methylfolate and P5P to lower homocysteine and restore B12 status.",
        trigger_condition="vitamina_b12 < 500 or homocisteina > 8",
        dosage="1,000 mcg methylcobalamin + 400 mcg methylfolate daily",
        source_ref="Refsum et al., Clin Chem 2004",
    ),
    ProtocolDefinition(
        id="insulin_sensitivity_diet", type=ProtocolType.DIET,
        title="Low glycaemic load nutrition",
        description="Remove refined sugar and flour, prioritise protein and fibre at every meal, and walk 10 minutes after meals.",
        trigger_condition="insulina > 6 or glicemia > 90",
        source_ref="Kraft, Diabetes Epidemic & You",
    ),
    ProtocolDefinition(
        id="triglyceride_lowering", type=ProtocolType.DIET,
        title="Triglyceride lowering",
        description="Cut alcohol and fructose; add two servings of oily fish per week or omega-3 supplementation.",
        trigger_condition="triglicerideos > 100 and hdl < 55",
        dosage="2 to 4 g EPA+DHA daily",
        source_ref="AHA Science Advisory 2019",
    ),
    ProtocolDefinition(
        id="anti_inflammatory_training", type=ProtocolType.EXERCISE,
        title="Zone 2 aerobic training",
        description="150 minutes per week of zone 2 cardio plus two resistance sessions to lower systemic inflammation.",
        trigger_condition="pcr_us > 1",
        source_ref="Kasapis & Thompson, JACC 2005",
    ),
    ProtocolDefinition(
        id="thyroid_workup", type=ProtocolType.MEDICAL,
        title="Thyroid work-up",
        description="Request anti-TPO, anti-TG and reverse T3; refer to endocrinology if TSH stays above range.",
        trigger_condition="tsh > 2.5",
        source_ref="AACE Thyroid Guidelines",
    ),
    ProtocolDefinition(
        id="liver_fat_assessment", type=ProtocolType.MEDICAL,
        title="Hepatic steatosis assessment",
        description="Order abdominal ultrasound and evaluate metabolic drivers of fatty liver.",
        trigger_condition="tgp > 26 and gama_gt > 25",
        source_ref="AASLD Practice Guidance",
    ),
)
