"""
MediChronicle - personal medical records into a clinical case portfolio.

Files are classified in batches by a language model, stored locally,
ordered into a timeline, synthesized into a narrative report and exported
as a paginated PDF and a Word-compatible document.
"""

__version__ = "0.1.0"
