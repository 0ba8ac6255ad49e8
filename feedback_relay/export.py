"""CSV and JSON export of analyzed issues."""
import json
from typing import Sequence

import pandas as pd

from schemas import IssueData

CSV_COLUMNS = {
    "id": "ID",
    "title": "Title",
    "summary": "Summary",
    "category": "Category",
    "priority": "Priority",
    "priority_reason": "Priority Reason",
    "status": "Status",
    "source": "Source",
    "source_url": "Source URL",
    "author": "Author",
    "sentiment_label": "Sentiment",
    "created_at": "Created At",
}


def issues_to_csv(issues: Sequence[IssueData]) -> str:
    rows = [issue.model_dump(include=set(CSV_COLUMNS)) for issue in issues]
    df = pd.DataFrame(rows, columns=list(CSV_COLUMNS))
    return df.rename(columns=CSV_COLUMNS).to_csv(index=False)


def issues_to_json(issues: Sequence[IssueData]) -> str:
    return json.dumps([issue.model_dump() for issue in issues], indent=2)
