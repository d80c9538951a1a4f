"""
Core orchestration: job model, queue, concurrency governor, processor and
shutdown coordination.
"""
