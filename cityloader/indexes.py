# cityloader/indexes.py
import json
from pathlib import Path
from typing import Dict, List, Sequence

INDEXABLE_FIELDS = [
    {"field": "name",       "type": "string", "description": "City name"},
    {"field": "country",    "type": "string", "description": "ISO country code (e.g., US, MX, ES)"},
    {"field": "population", "type": "number", "description": "Population count"},
    {"field": "tz",         "type": "string", "description": "Timezone identifier"},
    {"field": "lat",        "type": "number", "description": "Latitude"},
    {"field": "lon",        "type": "number", "description": "Longitude"},
]

# composite indexes worth adding when all of their fields are selected
COMMON_INDEX_PRESETS = [
    {"name": "Search by country and population", "fields": ["country", "population"],
     "description": "Query cities by country, sorted by population"},
    {"name": "Search by country and name", "fields": ["country", "name"],
     "description": "Query cities by country, sorted by name"},
    {"name": "Search by timezone", "fields": ["tz"],
     "description": "Query cities by timezone"},
    {"name": "Geographic queries", "fields": ["lat", "lon"],
     "description": "Query cities by geographic coordinates"},
    {"name": "Country and timezone", "fields": ["country", "tz"],
     "description": "Query cities by country and timezone"},
]

DEPLOY_INSTRUCTIONS = [
    "To deploy the indexes to Firestore, run:",
    "  firebase deploy --only firestore:indexes",
    "",
    "Or with a fresh Firebase CLI setup:",
    "  1. npm install -g firebase-tools",
    "  2. firebase login",
    "  3. firebase init firestore",
    "  4. firebase deploy --only firestore:indexes",
]


def _index(collection: str, fields: Sequence[str]) -> Dict:
    return {
        "collectionGroup": collection,
        "queryScope": "COLLECTION",
        "fields": [{"fieldPath": f, "order": "ASCENDING"} for f in fields],
    }


def generate_index_config(collection: str, selected_fields: Sequence[str]) -> Dict:
    known = {f["field"] for f in INDEXABLE_FIELDS}
    unknown = [f for f in selected_fields if f not in known]
    if unknown:
        raise ValueError(f"Cannot index unknown field(s): {', '.join(unknown)}")

    indexes: List[Dict] = [_index(collection, [f]) for f in selected_fields]

    selected = set(selected_fields)
    for preset in COMMON_INDEX_PRESETS:
        if all(f in selected for f in preset["fields"]):
            indexes.append(_index(collection, preset["fields"]))

    return {"indexes": indexes, "fieldOverrides": []}


def write_index_file(collection: str, selected_fields: Sequence[str], path: Path) -> Dict:
    config = generate_index_config(collection, selected_fields)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2))
    return config
