"""
LangGraph workflows for ElasticOps

Incident detection, ticket triage and evidence-gated intake. Import the
workflow modules directly; this package keeps no eager imports because the
graph state schema depends on the drafting module.
"""
