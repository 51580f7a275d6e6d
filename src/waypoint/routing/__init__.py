"""Routing: compiled path patterns and nested branch matching.

Routes are declared once, validated as a tree, and matched with a pure
depth-first walk that ranks sibling routes by specificity.
"""
