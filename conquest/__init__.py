"""
Papal Conquest - turn-based territory conquest with a rotating Pope.
"""
