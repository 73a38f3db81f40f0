"""
Pydantic models for ElasticOps
"""
