"""
Data Ingestion Step for the KDPI decision-curve analysis

This module contains the ZenML step for loading the registry export and the
KDRI-to-KDPI percentile table.
"""

import os
import pandas as pd
from zenml.steps import step
from typing import Tuple
from dotenv import load_dotenv

from src.config import load_registry_mapping
from src.data_ingester import RegistryCSVIngester
from src.kdpi_mapper import load_percentile_table

# Load environment variables
load_dotenv()


@step
def ingest_data() -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Ingest registry records and the percentile table.

    Locations come from the environment:
    - KDPI_REGISTRY_DIR: directory of registry CSV files (default: ./data/registry)
    - KDPI_REGISTRY_PATTERN: glob pattern of registry files (default: *.csv)
    - KDPI_TABLE_PATH: percentile table CSV (default: ./data/kdpi_mapping_table.csv)

    Returns:
        Tuple containing:
        - DataFrame with raw registry records
        - DataFrame with the parsed percentile table
    """
    registry_dir = os.getenv('KDPI_REGISTRY_DIR', './data/registry')
    registry_pattern = os.getenv('KDPI_REGISTRY_PATTERN', '*.csv')
    table_path = os.getenv('KDPI_TABLE_PATH', './data/kdpi_mapping_table.csv')

    print(f"\n=== Loading registry data from {registry_dir} ===\n")
    mapping = load_registry_mapping()
    raw_df = RegistryCSVIngester(registry_dir, registry_pattern, mapping).ingest()

    print(f"\n=== Loading percentile table from {table_path} ===\n")
    table = load_percentile_table(table_path)

    print(f"\n=== Data Summary ===")
    print(f"Registry records: {len(raw_df)} rows")
    print(f"Percentile table: {len(table)} ranges")

    return raw_df, table
