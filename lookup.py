from typing import Dict, List

from rapidfuzz import process, fuzz # type: ignore


def rank_suggestions(query: str, records: List[Dict], key: str = "name", limit: int = 10) -> List[Dict]:
    """
    Order candidate records by how closely ``record[key]`` matches ``query``.
    Returns autocomplete options: {"value": id, "label": name, "data": record, "score": score}.
    """
    if not query or not query.strip() or not records:
        return []
    choices = [str(r.get(key) or "") for r in records]
    matches = process.extract(query.strip(), choices, scorer=fuzz.WRatio, limit=limit)
    results = []
    for _match, score, idx in matches:
        record = records[idx]
        results.append({
            "value": record.get("id"),
            "label": record.get(key),
            "data": record,
            "score": score,
        })
    return results
