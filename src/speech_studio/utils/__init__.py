"""
Utility Modules for speech-studio.

    - timeit.py: Stage timing used in log lines and metrics
"""
