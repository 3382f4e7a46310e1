"""
Edge/Network Assembly

Joins tested pairs with the disease crosswalk (display names, categories,
frequencies) to produce node and edge tables for graph tools.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

FIXED_CATEGORIES = (
    'Eye', 'Ear/Nose/Throat', 'Mouth/Dental/Oral', 'Skin', 'Respiratory',
    'Gastrointestinal', 'Bone/Orthopedic', 'Cardiac',
    'Infection/Parasites', 'Trauma', 'Kidney/Urinary', 'Other',
)
CROSS_CATEGORY = 'Cross-category'

# Survey wording -> short display label
LABEL_REPLACEMENTS = {
    'Keratoconjunctivitis sicca (KCS)': 'Keratoconjunctivitis sicca',
    'Hypertension (high blood pressure)': 'Hypertension',
    'Lameness (chronic or recurrent)': 'Lameness',
    'Bordatella and/or parainfluenza (kennel cough)': 'Bordatella/parainfluenza',
    'Bordetella and/or parainfluenza (kennel cough)': 'Bordatella/parainfluenza',
    "Cushing's disease (hyperadrenocorticism; excess adrenal function)": "Cushing's disease",
    "Addison's disease (hypoadrenocorticism; low adrenal function)": "Addison's disease",
    'Diabetes mellitus (common diabetes which causes high blood sugar)': 'Diabetes mellitus',
    'Penetrating wound (such as a stick)': 'Penetrating wound',
    'Head trauma due to any cause': 'Head trauma',
    'Chronic or recurrent cough': 'Chronic/recurrent cough',
    'Chronic or recurrent bronchitis': 'Chronic/recurrent bronchitis',
    'Tracheal stenosis (narrowing)': 'Tracheal stenosis',
    'Dental calculus (yellow build-up on teeth)': 'Dental calculus',
    'Gingivitis (red, puffy gums)': 'Gingivitis',
    'Retained deciduous (baby) teeth': 'Retained deciduous teeth',
    'Hearing loss (incompletely deaf)': 'Hearing loss',
    'Urinary tract infection (chronic or recurrent)': 'Urinary tract infection',
    'Urinary crystals or stones in bladder or urethra': 'Urinary crystals/stones',
    'Alopecia (hair loss)': 'Alopecia',
    'Atopic dermatitis (atopy)': 'Atopic dermatitis',
    'Pruritis (itchy skin)': 'Pruritis',
    'Chronic or recurrent hot spots': 'Chronic/recurrent hot spots',
    'Chronic or recurrent skin infections': 'Chronic/recurrent skin infections',
    'Food or medicine allergies that affect the skin': 'Skin food/medicine allergies',
    'Food or medicine allergies': 'Gastrointestinal food/medicine allergies',
    'Chronic or recurrent diarrhea': 'Chronic/recurrent diarrhea',
    'Chronic or recurrent vomiting': 'Chronic/recurrent vomiting',
    'Hemorrhagic gastroenteritis (HGE) or stress colitis (acute)': 'Hemorrhagic gastroenteritis or stress colitis',
    'Seborrhea or seborrheic dermatitis (greasy skin)': 'Seborrhea or seborrheic dermatitis',
    'Chocolate': 'Chocolate consumption',
    'Grapes or raisins': 'Grape/raisin consumption',
}

CONDITION_PREFIX = 'condition_'
CANCER_PREFIX = 'hs_cancer_types_'


@dataclass
class NetworkTables:
    """
    Attributes:
        nodes: id, label, category, frequency, degree (diseases on at least one edge)
        edges: promoted undirected edges with names and categories
        directed_edges: significant directed edges with names and categories
    """
    nodes: pd.DataFrame
    edges: pd.DataFrame
    directed_edges: pd.DataFrame


def _code_str(value) -> Optional[str]:
    """Crosswalk codes may be read as floats (101.0); normalize to '101'."""
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value).strip()


def clean_disease_code(code: str, cancer_codes: Dict[str, str] = None) -> str:
    """
    Node id for a disease column.

    'condition_<x>' -> '<x>'; 'hs_cancer_types_<x>' -> its numerical code from
    the crosswalk (unchanged when the crosswalk has none).
    """
    if code.startswith(CONDITION_PREFIX):
        return code[len(CONDITION_PREFIX):]
    if code.startswith(CANCER_PREFIX):
        return (cancer_codes or {}).get(code, code)
    return code


def shorten_label(name: str) -> str:
    return LABEL_REPLACEMENTS.get(name, name)


def edge_category(category1: str, category2: str) -> str:
    """Shared category of both endpoints, or 'Cross-category'."""
    if category1 != category2:
        return CROSS_CATEGORY
    return category1 if category1 in FIXED_CATEGORIES else 'Other'


def build_disease_annotations(
    diseases: Sequence[str],
    frequencies: pd.DataFrame = None,
    prevalence: pd.Series = None
) -> pd.DataFrame:
    """
    Display annotations for each disease column.

    Args:
        diseases: Disease column codes
        frequencies: Normalized crosswalk (see cohort.load_disease_frequencies)
        prevalence: Observed positive counts, used when the crosswalk has no frequency

    Returns:
        DataFrame indexed by disease code with node_id, label, category, frequency
    """
    by_code, by_number = {}, {}
    if frequencies is not None and len(frequencies):
        for _, row in frequencies.iterrows():
            by_code[str(row['code_from_dap_data'])] = row
            number = _code_str(row.get('numerical_codes'))
            if number is not None:
                by_number.setdefault(number, row)
    cancer_codes = {
        code: _code_str(row.get('numerical_codes'))
        for code, row in by_code.items()
        if code.startswith(CANCER_PREFIX) and _code_str(row.get('numerical_codes')) is not None
    }

    records = []
    for disease in diseases:
        node_id = clean_disease_code(disease, cancer_codes)
        row = by_code.get(disease)
        if row is None:
            row = by_number.get(node_id)

        name = category = frequency = None
        if row is not None:
            name = row.get('disease_name')
            category = row.get('disease_category')
            frequency = row.get('frequency')
        if not isinstance(name, str) or not name:
            name = node_id
        if not isinstance(category, str) or category not in FIXED_CATEGORIES:
            category = 'Other'
        if frequency is None or pd.isna(frequency):
            frequency = prevalence.get(disease, np.nan) if prevalence is not None else np.nan

        records.append({
            'disease': disease,
            'node_id': node_id,
            'label': shorten_label(name),
            'category': category,
            'frequency': frequency,
        })
    return pd.DataFrame(records, columns=['disease', 'node_id', 'label', 'category', 'frequency']).set_index('disease')


def _annotate(df: pd.DataFrame, annotations: pd.DataFrame, left: str, right: str) -> pd.DataFrame:
    """Add source/target node ids, labels and categories plus the edge category."""
    res = df.copy()
    for end, col in (('source', left), ('target', right)):
        ann = annotations.reindex(res[col].values)
        res[f'{end}_id'] = ann['node_id'].values
        res[f'{end}_label'] = ann['label'].values
        res[f'{end}_category'] = ann['category'].fillna('Other').values
    res['edge_category'] = [
        edge_category(c1, c2) for c1, c2 in zip(res['source_category'], res['target_category'])
    ]
    return res


def assemble_undirected_edges(significant_pairs: pd.DataFrame, annotations: pd.DataFrame) -> pd.DataFrame:
    """Promoted undirected edges with display fields first."""
    res = _annotate(significant_pairs, annotations, 'disease1', 'disease2')
    front = ['source_id', 'target_id', 'source_label', 'target_label',
             'source_category', 'target_category', 'edge_category']
    return res[front + [c for c in res.columns if c not in front]].reset_index(drop=True)


def assemble_directed_edges(directed_pairs: pd.DataFrame, annotations: pd.DataFrame) -> pd.DataFrame:
    """Significant directed edges (source diagnosed first) with display fields."""
    if len(directed_pairs) and 'significant' in directed_pairs.columns:
        directed_pairs = directed_pairs[directed_pairs['significant'].astype(bool)]
    res = _annotate(directed_pairs, annotations, 'source', 'target')
    res = res.rename(columns={'source': 'source_disease', 'target': 'target_disease'})
    front = ['source_id', 'target_id', 'source_label', 'target_label',
             'source_category', 'target_category', 'edge_category']
    return res[front + [c for c in res.columns if c not in front]].reset_index(drop=True)


def build_node_table(edges: pd.DataFrame, annotations: pd.DataFrame) -> pd.DataFrame:
    """Nodes on at least one undirected edge, with degree."""
    columns = ['id', 'disease', 'label', 'category', 'frequency', 'degree']
    if len(edges) == 0:
        return pd.DataFrame(columns=columns)
    degree = pd.concat([edges['disease1'], edges['disease2']]).value_counts()
    nodes = annotations.loc[[d for d in annotations.index if d in degree.index]].reset_index()
    nodes = nodes.rename(columns={'node_id': 'id'})
    nodes['degree'] = nodes['disease'].map(degree).astype(int)
    return nodes[columns].sort_values(['degree', 'id'], ascending=[False, True]).reset_index(drop=True)


def assemble_network(
    significant_pairs: pd.DataFrame,
    annotations: pd.DataFrame,
    directed_pairs: pd.DataFrame = None
) -> NetworkTables:
    """Build node, undirected edge and directed edge tables."""
    edges = assemble_undirected_edges(significant_pairs, annotations)
    if directed_pairs is None:
        directed_pairs = pd.DataFrame(columns=['source', 'target', 'significant'])
    directed_edges = assemble_directed_edges(directed_pairs, annotations)
    return NetworkTables(
        nodes=build_node_table(edges, annotations),
        edges=edges,
        directed_edges=directed_edges,
    )
