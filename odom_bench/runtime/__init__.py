"""
Sequence execution, visualization and orchestration.
"""
