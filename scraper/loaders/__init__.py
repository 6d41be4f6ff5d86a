"""
Persistence adapters for scraped formations
"""
