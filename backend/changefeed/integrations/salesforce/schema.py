"""
Salesforce Sync Configuration.

Defines which standard objects are synced, which fields are selected and
which field carries the watermark. SystemModstamp is used instead of
LastModifiedDate because it also moves on system-driven changes.
"""

from typing import Dict

from changefeed.models.sync import ObjectSyncConfig

SALESFORCE_BATCH_SIZE = 2000
SALESFORCE_DATE_FIELD = "SystemModstamp"

# Appended to every object's field list
SYSTEM_FIELDS = ["OwnerId", "IsDeleted", "CreatedDate", "LastModifiedDate", "SystemModstamp"]

SALESFORCE_OBJECT_FIELDS: Dict[str, list] = {
    "Account": [
        "Id", "Name", "Type", "Industry", "Phone", "Website", "Description",
        "BillingStreet", "BillingCity", "BillingState", "BillingPostalCode", "BillingCountry",
        "AnnualRevenue", "NumberOfEmployees", "ParentId",
    ],
    "Contact": [
        "Id", "FirstName", "LastName", "Name", "AccountId", "Title", "Department",
        "Phone", "MobilePhone", "Email",
        "MailingStreet", "MailingCity", "MailingState", "MailingPostalCode", "MailingCountry",
    ],
    "Lead": [
        "Id", "FirstName", "LastName", "Name", "Company", "Title", "Email", "Phone",
        "Status", "Industry", "LeadSource", "Rating", "IsConverted", "ConvertedAccountId",
        "ConvertedContactId", "ConvertedOpportunityId",
    ],
    "Opportunity": [
        "Id", "Name", "AccountId", "Amount", "CloseDate", "StageName", "Probability",
        "Type", "LeadSource", "IsClosed", "IsWon", "Description",
        "ForecastCategory", "ForecastCategoryName",
    ],
    "Case": [
        "Id", "CaseNumber", "Subject", "Description", "Status", "Priority", "Origin",
        "Type", "Reason", "AccountId", "ContactId", "IsClosed", "ClosedDate",
    ],
    "Task": [
        "Id", "Subject", "Description", "Status", "Priority", "ActivityDate",
        "WhoId", "WhatId", "IsClosed", "IsHighPriority", "TaskSubtype", "CallType",
        "CallDurationInSeconds",
    ],
    "Event": [
        "Id", "Subject", "Description", "StartDateTime", "EndDateTime",
        "IsAllDayEvent", "DurationInMinutes", "Location", "WhoId", "WhatId",
        "ShowAs", "IsPrivate",
    ],
}


def build_config(object_type: str, fields: list, **overrides) -> ObjectSyncConfig:
    """Build a config for a Salesforce object with the standard watermark."""
    selected = list(dict.fromkeys(fields + SYSTEM_FIELDS))
    return ObjectSyncConfig(
        object_type=object_type,
        batch_size=overrides.pop("batch_size", SALESFORCE_BATCH_SIZE),
        fields=selected,
        date_field=SALESFORCE_DATE_FIELD,
        order_field=SALESFORCE_DATE_FIELD,
        **overrides,
    )


SALESFORCE_SYNC_CONFIGS: Dict[str, ObjectSyncConfig] = {
    object_type: build_config(object_type, fields)
    for object_type, fields in SALESFORCE_OBJECT_FIELDS.items()
}
