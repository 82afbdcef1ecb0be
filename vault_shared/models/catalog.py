"""
Product catalog: public product slugs mapped to archive filenames in storage.

Several slugs may share one archive (subscription tiers ship the full vault).
"""

from types import MappingProxyType
from typing import List, Mapping, Optional

STORAGE_PREFIX = "products/"

PRODUCT_CATALOG: Mapping[str, str] = MappingProxyType({
    "platinum-sample-pack":          "Platinum_Sample_Pack.zip",
    "specialty-cardiology":          "Specialty_Cardiology.zip",
    "specialty-radiology-mri":       "Specialty_Radiology_MRI.zip",
    "specialty-emergency-medicine":  "Specialty_Emergency_Medicine.zip",
    "specialty-psychiatry":          "Specialty_Psychiatry.zip",
    "specialty-pharmacology":        "Specialty_Pharmacology_Drug_Safety.zip",
    "specialty-oncology":            "Specialty_Oncology.zip",
    "specialty-neurology":           "Specialty_Neurology.zip",
    "specialty-pediatrics":          "Specialty_Pediatrics.zip",
    "specialty-womens-health":       "Specialty_Womens_Health.zip",
    "full-platinum-vault":           "Full_Platinum_Vault.zip",
    "enterprise-annual":             "Enterprise_Annual.zip",
    "pro-monthly-5k":                "Full_Platinum_Vault.zip",
    "pro-monthly-10k":               "Full_Platinum_Vault.zip",
})


def resolve_filename(slug: Optional[str], catalog: Mapping[str, str] = PRODUCT_CATALOG) -> Optional[str]:
    """Return the archive filename for a slug, or None for empty/unknown slugs."""
    if not slug:
        return None
    return catalog.get(slug)


def storage_key(filename: str) -> str:
    """Build the object storage key for an archive filename."""
    return f"{STORAGE_PREFIX}{filename}"


def available_slugs(catalog: Mapping[str, str] = PRODUCT_CATALOG) -> List[str]:
    """All slugs in catalog order."""
    return list(catalog.keys())
