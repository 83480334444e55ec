"""Channel protocol client adapters"""
