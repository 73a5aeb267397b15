"""
Expected detail fields per listing type.

This is a static, versioned contract for form rendering. Listing storage does
not consult it: details are persisted as whatever JSON object the client sends.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping


LISTING_FIELDS_VERSION = "1"


@dataclass(frozen=True)
class FieldSpec:
    key: str  # key inside Listing.details
    label: str
    type: str  # text | textarea | email | tel | url | number | image | gallery | select
    placeholder: str | None = None
    options: tuple[str, ...] | None = None


_EVENT = (
    FieldSpec("description", "Description", "textarea", "Describe the event in detail..."),
    FieldSpec("cover_image", "Cover image (banner)", "image"),
    FieldSpec("gallery", "Image gallery", "gallery"),
    FieldSpec("contact_name", "Contact name", "text", "Jane Doe"),
    FieldSpec("contact_phone", "Contact phone", "tel", "2920-123456"),
    FieldSpec("contact_email", "Contact email", "email", "contact@event.com"),
    FieldSpec("event_details", "Additional details", "textarea", "Cancelled if it rains, bring a chair..."),
    FieldSpec("tags", "Tags", "text", "music, rock, outdoors (comma separated)"),
)

_JOB = (
    FieldSpec("company_name", "Company name", "text", "My Company Inc."),
    FieldSpec("company_logo", "Company logo", "image"),
    FieldSpec("job_type", "Job type", "select", options=("Full time", "Part time", "Hourly", "Remote")),
    FieldSpec("salary_range", "Salary range (optional)", "text", "$150,000 - $200,000"),
    FieldSpec("responsibilities", "Responsibilities", "textarea", "Describe the role..."),
    FieldSpec("requirements", "Requirements", "textarea", "List the requirements..."),
    FieldSpec("company_website", "Company website", "url", "https://mycompany.com"),
)

_REAL_ESTATE = (
    FieldSpec("property_type", "Property type", "select", options=("House", "Apartment", "Land", "Commercial")),
    FieldSpec("status", "Operation", "select", options=("For sale", "For rent", "Short-term rental")),
    FieldSpec("price", "Price", "number", "5000000"),
    FieldSpec("bedrooms", "Bedrooms", "number", "3"),
    FieldSpec("bathrooms", "Bathrooms", "number", "2"),
    FieldSpec("surface_area", "Surface (m2)", "number", "120"),
    FieldSpec("gallery", "Photo gallery", "gallery"),
)

_PLACE = (
    FieldSpec("description", "Description", "textarea", "Describe the place and its services..."),
    FieldSpec("phone", "Phone", "tel", "2920-420000"),
    FieldSpec("website", "Website", "url", "https://mybusiness.com"),
    FieldSpec("opening_hours", "Opening hours", "textarea", "Mon-Fri: 9 to 18..."),
    FieldSpec("gallery", "Photo gallery", "gallery"),
    FieldSpec("amenities", "Amenities", "text", "wifi, parking, accessible (comma separated)"),
)

_VEHICLE = (
    FieldSpec("make", "Make", "text", "Ford"),
    FieldSpec("model", "Model", "text", "Ranger"),
    FieldSpec("year", "Year", "number", "2022"),
    FieldSpec("mileage", "Mileage (km)", "number", "50000"),
    FieldSpec("price", "Price", "number", "15000000"),
    FieldSpec("transmission", "Transmission", "select", options=("Manual", "Automatic")),
    FieldSpec("fuel_type", "Fuel", "select", options=("Petrol", "Diesel", "CNG", "Electric")),
    FieldSpec("gallery", "Photo gallery", "gallery"),
)

LISTING_FIELDS: Mapping[str, tuple[FieldSpec, ...]] = MappingProxyType({
    "events": _EVENT,
    "jobs": _JOB,
    "real-estate": _REAL_ESTATE,
    "places": _PLACE,
    "vehicles": _VEHICLE,
})


def fields_for(listing_type_slug: str, table: Mapping[str, tuple[FieldSpec, ...]] = LISTING_FIELDS) -> tuple[FieldSpec, ...]:
    return table.get(listing_type_slug, ())
