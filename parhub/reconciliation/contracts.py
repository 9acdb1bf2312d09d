"""
Declared synonym contracts for every legacy source shape.

Each contract is versioned data: when a source drifts (a new export renames
``Phone`` to ``Mobile Number``), add the synonym here and bump the version
instead of editing lookup code. Candidate order is significant; the first
non-empty match wins.
"""

from __future__ import annotations

from typing import Tuple

from .accessor import FieldContract, FieldSynonyms

# Table hints for discovery, exact name first then substring.
LEGACY_CUSTOMER_TABLE_HINTS: Tuple[str, ...] = ("customers", "customer")
LEGACY_VEHICLE_TABLE_HINTS: Tuple[str, ...] = ("vehicles", "vehicle")

CREATED_AT_SYNONYMS = ("created_at", "createdat", "created", "created_on", "created_date")
UPDATED_AT_SYNONYMS = ("updated_at", "updatedat", "updated", "updated_on", "modified_at")
NOTES_SYNONYMS = ("notes", "note", "comments", "comment")


LEGACY_CUSTOMER_CONTRACT = FieldContract(
    name="legacy_customer",
    version="0001",
    fields=(
        FieldSynonyms(
            "legacy_id",
            ("id", "customerid", "customer_id", "legacy_customer_id", "externalclientid"),
            "Primary key of the legacy customer row.",
        ),
        FieldSynonyms("first_name", ("first_name", "firstname", "first")),
        FieldSynonyms("last_name", ("last_name", "lastname", "last")),
        FieldSynonyms(
            "full_name",
            ("name", "fullname", "customername", "customer_name"),
            "Single-column name split on whitespace when first/last are absent.",
        ),
        FieldSynonyms("business_name", ("business_name", "business", "company", "company_name")),
        FieldSynonyms(
            "phone",
            ("phone", "phone_number", "phonenumber", "mobile", "cell", "primary_phone", "primaryphone"),
        ),
        FieldSynonyms("email", ("email", "email_address", "emailaddress")),
        FieldSynonyms("address1", ("address1", "address_1", "street", "street1", "line1", "address")),
        FieldSynonyms("address2", ("address2", "address_2", "street2", "line2", "suite", "apt", "apartment")),
        FieldSynonyms("city", ("city", "town")),
        FieldSynonyms("state", ("state", "state_province", "province", "region")),
        FieldSynonyms("zip", ("zip", "zipcode", "postal", "postal_code", "postalcode", "zip_code")),
        FieldSynonyms("notes", NOTES_SYNONYMS),
        FieldSynonyms("dealer_level", ("dealer_level", "tier", "level")),
        FieldSynonyms("created_at", CREATED_AT_SYNONYMS, normalizer=None),
        FieldSynonyms("updated_at", UPDATED_AT_SYNONYMS, normalizer=None),
    ),
)

# Column on the legacy vehicle table pointing at the legacy customer row.
LEGACY_VEHICLE_OWNER_SYNONYMS: Tuple[str, ...] = (
    "customer_id",
    "customerid",
    "customer",
    "customer_id_fk",
    "owner_id",
)

LEGACY_VEHICLE_CONTRACT = FieldContract(
    name="legacy_vehicle",
    version="0001",
    fields=(
        FieldSynonyms("legacy_id", ("id", "vehicleid", "vehicle_id", "legacy_vehicle_id")),
        FieldSynonyms("year", ("year", "vehicleyear", "vehicle_year")),
        FieldSynonyms("make", ("make", "vehiclemake", "vehicle_make")),
        FieldSynonyms("model", ("model", "vehiclemodel", "vehicle_model")),
        FieldSynonyms("trim", ("trim",)),
        FieldSynonyms("color", ("color", "paint")),
        FieldSynonyms("plate", ("plate", "license_plate", "licenseplate")),
        FieldSynonyms("vin", ("vin", "vinnumber", "vehicle_vin")),
        FieldSynonyms("mileage", ("mileage", "miles", "odometer")),
        FieldSynonyms("notes", NOTES_SYNONYMS),
        FieldSynonyms("created_at", CREATED_AT_SYNONYMS, normalizer=None),
        FieldSynonyms("updated_at", UPDATED_AT_SYNONYMS, normalizer=None),
    ),
)


# Customer export spreadsheet (one row per customer, optional vehicle columns).
CUSTOMER_EXPORT_CONTRACT = FieldContract(
    name="customer_export",
    version="2025.01",
    fields=(
        FieldSynonyms("legacy_client_id", ("Client ID", "ClientID", "Customer ID")),
        FieldSynonyms("legacy_lead_id", ("Lead ID", "LeadID")),
        FieldSynonyms("lead_created_at", ("Lead Created Date", "Lead Created"), normalizer=None),
        FieldSynonyms("date_added", ("Date Added",), normalizer=None),
        FieldSynonyms("website", ("Website",)),
        FieldSynonyms("company", ("Company",)),
        FieldSynonyms("business_name", ("Company", "Business Name")),
        FieldSynonyms("unsubscribed_email", ("Unsubscribed Email",), normalizer=None),
        FieldSynonyms("primary_user_assigned", ("Primary User Assigned",)),
        FieldSynonyms("last_appointment", ("Last Appointment",), normalizer=None),
        FieldSynonyms("last_service", ("Last Service",), normalizer=None),
        FieldSynonyms("tags", ("Tags",)),
        FieldSynonyms("source", ("Source",)),
        FieldSynonyms("pnl", ("P&L",)),
        FieldSynonyms("notes", ("Notes",)),
        FieldSynonyms("first_name", ("First Name",)),
        FieldSynonyms("last_name", ("Last Name",)),
        FieldSynonyms("email", ("Email", "Email Address")),
        FieldSynonyms("address1", ("Address", "Address 1")),
        FieldSynonyms("address2", ("Address 2",)),
        FieldSynonyms("city", ("City",)),
        FieldSynonyms("state", ("State/Province", "State")),
        FieldSynonyms("zip", ("Zip/Postal Code", "Zip", "Postal Code")),
        FieldSynonyms("country", ("Country",)),
        FieldSynonyms("phone", ("Phone", "Phone Number", "Mobile"), normalizer=None),
        FieldSynonyms("vin", ("VIN", "Vin")),
        FieldSynonyms("year", ("Year",), normalizer=None),
        FieldSynonyms("make", ("Make",)),
        FieldSynonyms("model", ("Model",)),
        FieldSynonyms("trim", ("Trim",)),
        FieldSynonyms("mileage", ("Odometer", "Mileage"), normalizer=None),
        FieldSynonyms("plate", ("Plate", "License Plate")),
        FieldSynonyms("color", ("Color",)),
        FieldSynonyms("vehicle_notes", ("Vehicle Notes",)),
    ),
)


# Calendar export. Identity probes are broader than the id-derivation probes
# so that a title holding a customer name can still link the event.
CALENDAR_EVENT_CONTRACT = FieldContract(
    name="calendar_event",
    version="2025.01",
    fields=(
        FieldSynonyms("event_id", ("Event ID", "ID", "Legacy Event ID")),
        FieldSynonyms("event_date", ("Start", "Event Date", "Date", "Start Time"), normalizer=None),
        FieldSynonyms("title", ("Title", "Subject", "Summary", "Event")),
        FieldSynonyms("description", ("Description", "Notes", "Details", "Body")),
        FieldSynonyms("vin", ("VIN",)),
        FieldSynonyms("phone", ("Phone", "Customer Phone", "Customer Contact", "Contact"), normalizer=None),
        FieldSynonyms("name", ("Name", "Customer", "Client", "Customer Name", "Full Name", "Title", "Subject")),
        FieldSynonyms("email", ("Email", "Customer Email")),
        FieldSynonyms("services", ("Services", "Service", "Service Type")),
        FieldSynonyms("location", ("Location",)),
    ),
)

# Phone and name used for the deterministic event id never fall back to the title.
EVENT_ID_PHONE_SYNONYMS: Tuple[str, ...] = ("Phone", "Customer Phone", "Contact")
EVENT_ID_NAME_SYNONYMS: Tuple[str, ...] = ("Name", "Customer", "Client", "Customer Name", "Full Name")


CONTRACTS = {
    contract.name: contract
    for contract in (
        LEGACY_CUSTOMER_CONTRACT,
        LEGACY_VEHICLE_CONTRACT,
        CUSTOMER_EXPORT_CONTRACT,
        CALENDAR_EVENT_CONTRACT,
    )
}
