"""
Case Study Builder
HTTP blueprints, one per feature area, registered by ``create_app``.
"""
