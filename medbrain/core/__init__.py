"""
Core Package - Logical Brain, generation, agents, products and orchestration
"""
