"""
Reduction pipeline: eligibility rules, the reduction orchestrator and playlist repair.
"""
