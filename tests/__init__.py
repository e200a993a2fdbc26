"""
httpweave test suite
"""
