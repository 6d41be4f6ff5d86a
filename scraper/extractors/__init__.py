"""
HTML extraction helpers and formation page parser
"""
