"""
Case Study Builder
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing for the translation fallback)
"""
