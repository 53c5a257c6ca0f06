"""
Farm risk advisor package.

Design intent:
- Interpret agricultural risk for one farm without deciding for the farmer.
- Keep domain modules (context/analyzers/cohort/risk/explain) independent of
  the HTTP surface.
"""
