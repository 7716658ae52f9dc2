"""
CRM source integrations (Salesforce, HubSpot).
"""
