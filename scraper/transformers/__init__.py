"""
Normalization of heterogeneous formation payloads
"""
