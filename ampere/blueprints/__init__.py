"""
One blueprint package per resource; each exposes its Blueprint from routes.py.
"""
