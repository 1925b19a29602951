"""
Ghibli Vision
Multi-provider Studio Ghibli style image transformation.
"""
