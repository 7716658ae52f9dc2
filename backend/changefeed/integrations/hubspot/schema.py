"""
HubSpot Sync Configuration.

CRM v3 objects are synced through the search API, filtered and sorted on
hs_lastmodifieddate. Object types are plural path segments; entity_name
is the singular event namespace.
"""

from typing import Dict

from changefeed.models.sync import ObjectSyncConfig

HUBSPOT_BATCH_SIZE = 100
HUBSPOT_DATE_FIELD = "hs_lastmodifieddate"

# Search API rejects limits above this
HUBSPOT_MAX_PAGE_SIZE = 200

# Search API pages no further than this many results into one query
HUBSPOT_SEARCH_RESULT_LIMIT = 10000

HUBSPOT_OBJECT_PROPERTIES: Dict[str, list] = {
    "contacts": [
        "firstname", "lastname", "email", "phone", "mobilephone",
        "company", "jobtitle", "city", "state", "country", "zip", "address",
        "hubspot_owner_id", "lifecyclestage", "hs_lead_status", "createdate",
    ],
    "companies": [
        "name", "domain", "industry", "phone", "website", "description",
        "city", "state", "country", "zip", "address",
        "annualrevenue", "numberofemployees", "hubspot_owner_id", "lifecyclestage", "createdate",
    ],
    "deals": [
        "dealname", "amount", "closedate", "dealstage", "pipeline",
        "hubspot_owner_id", "description", "dealtype", "hs_priority",
        "hs_deal_stage_probability", "createdate",
    ],
    "tickets": [
        "subject", "content", "hs_pipeline", "hs_pipeline_stage",
        "hs_ticket_priority", "hubspot_owner_id", "createdate", "closed_date",
    ],
}

HUBSPOT_ENTITY_NAMES = {
    "contacts": "contact",
    "companies": "company",
    "deals": "deal",
    "tickets": "ticket",
}


def build_config(object_type: str, properties: list, **overrides) -> ObjectSyncConfig:
    """Build a config for a HubSpot object type with the standard watermark."""
    return ObjectSyncConfig(
        object_type=object_type,
        batch_size=overrides.pop("batch_size", HUBSPOT_BATCH_SIZE),
        fields=list(dict.fromkeys(properties + [HUBSPOT_DATE_FIELD])),
        date_field=HUBSPOT_DATE_FIELD,
        order_field=HUBSPOT_DATE_FIELD,
        id_field="id",
        created_field="createdate",
        deleted_field="archived",
        owner_field="hubspot_owner_id",
        entity_name=overrides.pop("entity_name", HUBSPOT_ENTITY_NAMES.get(object_type)),
        **overrides,
    )


HUBSPOT_SYNC_CONFIGS: Dict[str, ObjectSyncConfig] = {
    object_type: build_config(object_type, properties)
    for object_type, properties in HUBSPOT_OBJECT_PROPERTIES.items()
}
