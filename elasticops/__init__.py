"""
ElasticOps Triage Engine
"""
