"""MediScan - personal health assistant: symptom interview, emergency triage, health timeline."""

__version__ = "0.1.0"
