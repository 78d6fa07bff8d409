"""
Package marker for scripts to allow running as a module:

    python3 -m scripts.run_simulation
"""
