"""
TopK Miner Flask Backend
========================
Top-K frequent pattern mining service:
- Dataset upload with encoding, delimiter and header detection
- Top-K FP-Growth over the stored dataset (bounded pattern collectors)
- Optional subsumption pruning of equal-support sub-patterns
- Partitioned mining with fan-in of per-partition top-K collectors

Run with: python main.py
Server: http://localhost:5000
"""

import os
import re
import json
import math
import time
import unicodedata
from flask import Flask, request, jsonify
from flask_cors import CORS
import pandas as pd
import numpy as np

from topk_fpgrowth import mine_top_k, mine_top_k_partitioned

app = Flask(__name__)
CORS(app, origins=["*"])

# Directories
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
PROCESSED_FOLDER = os.path.join(BASE_DIR, 'processed')

os.makedirs(PROCESSED_FOLDER, exist_ok=True)

TRANSACTIONS_FILE = os.path.join(PROCESSED_FOLDER, 'transactions.csv')

# Mining defaults
DEFAULT_TOP_K = 50
MAX_TOP_K = 10000
DEFAULT_MIN_SUPPORT = 0.01
MAX_PARTITIONS = 64

NULL_ITEMS = {'nan', 'none', 'null', '', 'na', 'n/a'}


# =============================================================================
# TRANSACTION PARSING
# =============================================================================

class TransactionParser:
    """
    Turns raw uploaded text into clean transactions.
    """

    def __init__(self, options=None):
        self.options = options or {}

    def normalize_text(self, text):
        """
        Normalize item text:
        - Unicode NFC
        - Strip invisible and control characters
        - Trim whitespace and quotes
        - Optional lowercase
        """
        if not isinstance(text, str):
            text = str(text)

        text = unicodedata.normalize('NFC', text)
        text = re.sub(r'[\u200b\u200c\u200d\ufeff\u00ad]', '', text)
        text = ''.join(char for char in text if unicodedata.category(char)[0] != 'C' or char in '\t ')
        text = text.strip().strip('"\'').strip()

        if self.options.get('lowercase', False):
            text = text.lower()

        return text

    def detect_encoding(self, file_bytes):
        """Detect file encoding with fallback to UTF-8."""
        for encoding in ['utf-8', 'utf-8-sig', 'latin-1', 'cp1252']:
            try:
                file_bytes.decode(encoding)
                return encoding
            except (UnicodeDecodeError, AttributeError):
                continue
        return 'utf-8'

    def detect_delimiter(self, content):
        """
        Auto-detect delimiter from content.
        Supports: comma, semicolon, pipe, tab, space
        """
        delimiters = [',', ';', '|', '\t']
        counts = {d: content.count(d) for d in delimiters}

        if max(counts.values()) > 0:
            return max(counts, key=counts.get)
        # Whitespace separated item ids (FIMI style)
        return ' '

    def detect_header(self, lines, delimiter=','):
        """
        Detect if first line is a header.
        Returns start index of the data lines.
        """
        if not lines:
            return 0

        first_line = lines[0].strip().lower()
        header_keywords = ['items', 'item', 'transaction', 'transactions',
                           'product', 'products', 'basket', 'order']

        if any(first_line == kw or first_line.startswith(kw + delimiter) for kw in header_keywords):
            return 1
        return 0

    def parse_transaction(self, line, delimiter=','):
        """Split a line into cleaned, de-duplicated items."""
        if not line or not line.strip():
            return []

        seen = set()
        cleaned = []
        for item in line.split(delimiter):
            item = self.normalize_text(item)
            if item.lower() in NULL_ITEMS:
                continue
            if item not in seen:
                seen.add(item)
                cleaned.append(item)

        return cleaned

    def parse(self, file_bytes):
        encoding = self.detect_encoding(file_bytes)
        content = file_bytes.decode(encoding, errors='ignore')
        lines = [line for line in content.splitlines() if line.strip()]

        delimiter = self.detect_delimiter(content[:5000])
        start_idx = self.detect_header(lines, delimiter)

        transactions = []
        for line in lines[start_idx:]:
            items = self.parse_transaction(line, delimiter)
            if items:
                transactions.append(items)
        return transactions


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def convert_numpy_types(obj):
    """Convert numpy types to Python native types for JSON serialization."""
    if isinstance(obj, dict):
        return {k: convert_numpy_types(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_numpy_types(i) for i in obj]
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    else:
        return obj


def save_transactions(transactions):
    """Store transactions as a one-column CSV, each row a JSON list of items."""
    items_str = [json.dumps(list(t)) for t in transactions]
    pd.DataFrame({'items': items_str}).to_csv(TRANSACTIONS_FILE, index=False)


def load_transactions():
    """Load transactions from processed CSV file."""
    if not os.path.exists(TRANSACTIONS_FILE):
        raise FileNotFoundError("No dataset uploaded. Please upload a dataset first.")

    df = pd.read_csv(TRANSACTIONS_FILE, dtype={'items': str})
    transactions = df['items'].apply(lambda x: json.loads(x) if pd.notna(x) else []).tolist()
    transactions = [[item.strip() for item in t if item.strip()] for t in transactions]
    return [t for t in transactions if t]


def dataset_stats(transactions):
    all_items = set()
    for t in transactions:
        all_items.update(t)
    lengths = np.array([len(t) for t in transactions])
    return {
        'transactions': len(transactions),
        'unique_items': len(all_items),
        'avg_items_per_transaction': round(float(lengths.mean()), 2) if len(lengths) else 0.0,
        'max_items_per_transaction': int(lengths.max()) if len(lengths) else 0,
    }


def parse_flag(value, name):
    """Accept JSON booleans and the usual true/false strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ('true', '1', 'yes'):
            return True
        if text in ('false', '0', 'no'):
            return False
    raise ValueError(f'{name} must be true or false')


def parse_topk_params(data):
    """
    Read and validate top-K mining parameters from a request body.
    Raises ValueError on bad input.
    """
    top_k = int(data.get('top_k', DEFAULT_TOP_K))
    min_support = float(data.get('min_support', DEFAULT_MIN_SUPPORT))
    subsumption = parse_flag(data.get('subsumption', True), 'subsumption')
    partitions = int(data.get('partitions', 1))

    if not 0 < top_k <= MAX_TOP_K:
        raise ValueError(f'top_k must be between 1 and {MAX_TOP_K}')
    if not 0 < min_support <= 1:
        raise ValueError('min_support must be between 0 and 1')
    if not 0 < partitions <= MAX_PARTITIONS:
        raise ValueError(f'partitions must be between 1 and {MAX_PARTITIONS}')

    return {
        'top_k': top_k,
        'min_support': min_support,
        'subsumption': subsumption,
        'partitions': partitions,
    }


def run_topk(transactions, params):
    """Mine top-K patterns and return the filled collector."""
    n_transactions = len(transactions)
    min_support_count = max(1, math.ceil(params['min_support'] * n_transactions))

    if params['partitions'] > 1:
        collector = mine_top_k_partitioned(
            transactions, params['top_k'], min_support_count,
            subpattern_check=params['subsumption'],
            num_groups=params['partitions'],
        )
    else:
        collector = mine_top_k(
            transactions, params['top_k'], min_support_count,
            subpattern_check=params['subsumption'],
        )
    return collector, min_support_count


# =============================================================================
# API ROUTES
# =============================================================================

@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return jsonify({'status': 'ok', 'message': 'TopK Miner backend is running'})


@app.route('/api/upload', methods=['POST'])
def upload_dataset():
    """
    Upload a CSV/TXT transaction dataset, one transaction per line.
    """
    if 'file' not in request.files:
        return jsonify({'error': 'No file provided'}), 400

    file = request.files['file']

    if file.filename == '':
        return jsonify({'error': 'No file selected'}), 400

    filename = file.filename.lower()
    if not filename.endswith(('.csv', '.txt', '.dat')):
        return jsonify({'error': 'Unsupported file format. Use CSV, TXT or DAT.'}), 400

    try:
        lowercase = request.form.get('lowercase', '').lower() in ('1', 'true', 'yes')
        parser = TransactionParser({'lowercase': lowercase})
        transactions = parser.parse(file.read())

        if not transactions:
            return jsonify({'error': 'No valid transactions found in dataset'}), 400

        save_transactions(transactions)

        return jsonify(convert_numpy_types({
            'success': True,
            'message': 'Dataset uploaded successfully',
            'stats': dataset_stats(transactions),
        }))

    except Exception as e:
        import traceback
        traceback.print_exc()
        return jsonify({'error': f'Failed to process file: {str(e)}'}), 500


@app.route('/api/topk', methods=['POST'])
def mine_topk_patterns():
    """
    Mine the top-K frequent patterns of the uploaded dataset, or of the
    `transactions` list given in the request body.
    """
    try:
        data = request.get_json(silent=True) or {}
        params = parse_topk_params(data)

        start_time = time.time()
        if 'transactions' in data:
            transactions = [[str(item) for item in t] for t in data['transactions'] if t]
        else:
            transactions = load_transactions()

        if not transactions:
            return jsonify({'error': 'No transactions loaded. Please upload a dataset first.'}), 400

        load_time = time.time() - start_time
        mine_start = time.time()

        collector, min_support_count = run_topk(transactions, params)

        mine_time = time.time() - mine_start
        n_transactions = len(transactions)

        patterns = []
        for pattern in collector.ranked_contents():
            entry = pattern.to_dict()
            entry['length'] = len(pattern)
            entry['support_ratio'] = round(pattern.support / n_transactions, 4)
            patterns.append(entry)

        return jsonify(convert_numpy_types({
            'success': True,
            'algorithm': 'topk-fp-growth',
            'patterns': patterns,
            'count': collector.count(),
            'is_full': collector.is_full(),
            'least_support': collector.least_support(),
            'execution_time': {
                'load_seconds': round(load_time, 3),
                'mine_seconds': round(mine_time, 3),
                'total_seconds': round(load_time + mine_time, 3)
            },
            'parameters': dict(params, min_support_count=min_support_count)
        }))

    except FileNotFoundError as e:
        return jsonify({'error': str(e)}), 400
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        import traceback
        traceback.print_exc()
        return jsonify({'error': f'Mining failed: {str(e)}'}), 500


@app.route('/api/dataset/preview', methods=['GET'])
def preview_dataset():
    """Get a preview of the dataset with sample transactions."""
    try:
        transactions = load_transactions()

        sample = transactions[:10]

        return jsonify(convert_numpy_types({
            'success': True,
            'sample_transactions': [
                {'id': i + 1, 'items': t} for i, t in enumerate(sample)
            ],
            'stats': dataset_stats(transactions),
        }))

    except FileNotFoundError as e:
        return jsonify({'error': str(e)}), 404
    except Exception as e:
        return jsonify({'error': str(e)}), 500


if __name__ == '__main__':
    print("=" * 60)
    print("TopK Miner Backend - Bounded Top-K FP-Growth")
    print("=" * 60)
    print(f"Processed folder: {PROCESSED_FOLDER}")
    print(f"Default top_k: {DEFAULT_TOP_K} (max {MAX_TOP_K})")
    print(f"Max partitions: {MAX_PARTITIONS}")
    print("=" * 60)
    app.run(host='0.0.0.0', port=5000, debug=False)
