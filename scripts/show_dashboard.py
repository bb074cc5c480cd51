"""CLI script to print a user's dashboard statistics from the local store.
Usage: python scripts/show_dashboard.py --user-id ID [--section NAME]
"""
import sys
import argparse
import json
import pathlib
from typing import Optional
# Ensure the project root is on sys.path so `quiztrack` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from quiztrack.dependencies import get_catalog, get_question_provider, get_statistics, get_store

SECTIONS = {
    'dashboard': 'dashboard',
    'overview': 'overview',
    'recent': 'recent_performance',
    'modules': 'module_breakdown',
    'time': 'time_analysis',
    'streaks': 'streaks',
    'problems': 'problem_questions',
    'achievements': 'achievements',
    'evolution': 'evolution_series',
    'types': 'performance_by_type',
}


def _to_json(value):
    if hasattr(value, 'model_dump'):
        return value.model_dump(mode='json')
    if isinstance(value, list):
        return [_to_json(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_json(v) for k, v in value.items()}
    return value


def main(user_id: str, section: str = 'dashboard', store=None) -> Optional[dict]:
    """Compute one dashboard section for `user_id` and print it as JSON.

    Unknown users are reported instead of printing an all-zero dashboard.
    """
    store = store or get_store()
    if store.get_user(user_id) is None and store.medium.get(store.user_key(user_id)) is None:
        print(f'No stored progress for user {user_id}')
        return None
    stats = get_statistics(store=store, catalog=get_catalog(), provider=get_question_provider())
    payload = _to_json(getattr(stats, SECTIONS[section])(user_id))
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return payload


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--user-id', required=True, help='Id of the user whose progress to show')
    parser.add_argument('--section', default='dashboard', choices=sorted(SECTIONS), help='Dashboard section to print')
    args = parser.parse_args()
    main(args.user_id, section=args.section)
