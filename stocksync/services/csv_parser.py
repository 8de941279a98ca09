import csv
from typing import List

FeedRow = List[str]


def parse_line(line: str) -> FeedRow:
    """
    Découpe une ligne CSV (virgule, guillemets doubles, "" échappé).
    Retourne [] si la ligne est illisible.
    """
    try:
        rows = list(csv.reader([line], strict=True))
    except csv.Error:
        return []
    return rows[0] if rows else []


def parse_csv(content: str) -> List[FeedRow]:
    """
    Transforme le texte brut en lignes de champs, sans interpréter l'en-tête :
    la première ligne retournée est l'en-tête, à consommer par l'appelant.
    """
    if not content:
        return []

    content = content.replace("\r\n", "\n").replace("\r", "\n")

    data: List[FeedRow] = []
    for line in content.split("\n"):
        line = line.strip()
        if not line:
            continue

        row = parse_line(line)
        if row:
            data.append(row)

    return data
