# herbchain/catalog.py
"""
Default rule set and sustainability attestations.

Loaded into the in-memory store when no database is configured and pushed
to MongoDB by db_seeding.py.
"""

ASHWAGANDHA = "Withania somnifera"

DEFAULT_RULES = [
    {
        "id": "ashwagandha-geo-fence-rajasthan",
        "type": "geo_fence",
        "species": ASHWAGANDHA,
        "description": "Approved wild-collection and cultivation zones",
        "parameters": {
            "allowed_zones": [
                {
                    "name": "Rajasthan Zone A",
                    "bounds": [[26.0, 74.0], [27.0, 75.0]],
                    "max_daily_harvest": 100,
                    "conservation_status": "sustainable",
                },
                {
                    "name": "Madhya Pradesh Zone B",
                    "bounds": [[22.0, 77.0], [23.0, 78.0]],
                    "max_daily_harvest": 150,
                    "conservation_status": "monitored",
                },
            ]
        },
        "active": True,
    },
    {
        "id": "ashwagandha-seasonal-restrictions",
        "type": "seasonal",
        "species": ASHWAGANDHA,
        "description": "Oct-Feb harvest, monsoon closure, spring recovery",
        "parameters": {
            "harvesting_months": [10, 11, 12, 1, 2],
            "closed_months": [6, 7, 8, 9],
            "recovery_months": [3, 4, 5],
            "min_plant_maturity": 12,
        },
        "active": True,
    },
    {
        "id": "ashwagandha-conservation-limits",
        "type": "conservation",
        "species": ASHWAGANDHA,
        "description": "Per-zone harvest quotas",
        "parameters": {
            "max_daily_harvest_per_zone": 100,
            "max_seasonal_harvest_per_zone": 2000,
            "min_plant_age": 12,
            "max_harvest_percentage": 0.30,
            "required_regeneration_time": 24,
            "minimum_plant_density": 50,
        },
        "active": True,
    },
    {
        "id": "ashwagandha-quality-thresholds",
        "type": "quality",
        "species": ASHWAGANDHA,
        "description": "Pharmacopoeia limits for root material",
        "parameters": {
            "max_moisture": 12,
            "min_withanolides": 0.3,
            "max_total_ash": 10,
            "max_acid_insoluble_ash": 3,
            "max_pesticides": 0.01,
            "max_heavy_metals": {"lead": 10, "cadmium": 0.3, "mercury": 1, "arsenic": 3},
            "required_dna_match": True,
            "min_active_compounds": {"withanolideA": 0.1, "withanolideD": 0.05},
        },
        "active": True,
    },
]

SUSTAINABILITY_PROOFS = [
    {
        "type": "organic",
        "certificate_id": "ORG-2024-001",
        "issued_by": "India Organic Certification Agency",
        "valid_from": "2024-01-01",
        "valid_until": "2025-12-31",
    },
    {
        "type": "sustainable_harvest",
        "certificate_id": "SH-2024-001",
        "issued_by": "Forest Conservation Council",
        "valid_from": "2024-01-01",
        "valid_until": "2025-06-30",
    },
]
