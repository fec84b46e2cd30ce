"""Drug interaction safety-checking engine.

This package checks a set of medications for drug-drug interactions and
for conflicts with a patient's allergies. It classifies each finding by
severity and rolls the findings up into a check result. It also keeps the
interaction catalog current by reconciling data from external drug
databases.
"""
