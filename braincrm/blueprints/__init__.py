"""
Blueprints (one per functional area). All endpoints speak JSON.
"""
