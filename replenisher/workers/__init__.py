"""
Workers that execute work handed to them by the job scheduler engine.
"""
