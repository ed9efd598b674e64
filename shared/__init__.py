"""
Shared Kernel

Base classes and application plumbing shared by the trek and booking domains:
domain events, aggregates, the event bus and the Django unit of work.
"""
