"""
Utility modules.

    - text.py: Byte accounting, slugs, duration estimates
    - timeit.py: Stage timing
"""
