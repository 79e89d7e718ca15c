"""
Housing scheme application intake package.
"""
