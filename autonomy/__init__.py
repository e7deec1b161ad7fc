"""
Aegis Autonomy: Autonomous Task-Execution Engine

Drives a multi-step agent from a high-level description to a terminal outcome:
- Planning: recursive task decomposition bounded by depth
- Execution: retry/reflection loop with self-correction
- Recovery: per-task checkpoints and whole-run rollback
- Tracking: hierarchical goals with aggregated progress

Copyright (c) 2024 Aegis Contributors
"""

__version__ = "0.1.0"
__author__ = "Aegis Team"
