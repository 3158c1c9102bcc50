"""
Workflow Auto-Tagger

Reads the generation workflow embedded in image metadata, derives
checkpoint/LoRA/prompt tags from its node graph, and adds or removes
those tags on asset library items in cancellable concurrent chunks.
"""

__version__ = "1.0.0"
__author__ = "Workflow Auto-Tagger Team"
