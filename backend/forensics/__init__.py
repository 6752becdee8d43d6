"""
Remora Order-Flow Forensics

Batch forensics over Indonesian equity order flow:
- Running trade tape: broker net positions, split orders, bandar classification
- Verdict: directional call with churning override
- Broker distribution: buyer -> seller graph with layout and queries
"""

__version__ = "1.0.0"
