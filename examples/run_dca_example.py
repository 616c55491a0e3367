#!/usr/bin/env python3
"""
Example running the KDPI decision-curve analysis without ZenML.

This script assumes:
1. Registry CSV exports sit in KDPI_REGISTRY_DIR (default: ./data/registry)
2. The KDRI-to-KDPI table is at KDPI_TABLE_PATH (default: ./data/kdpi_mapping_table.csv)
"""

import os
import sys
import logging
from dotenv import load_dotenv

# Add the project root directory to the Python path
sys.path.append(os.path.abspath(os.path.dirname(os.path.dirname(__file__))))

from src.analysis import run_kdpi_dca
from src.config import load_analysis_config, load_registry_mapping
from src.data_ingester import RegistryCSVIngester
from src.kdpi_mapper import load_percentile_table

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def main():
    load_dotenv()
    config = load_analysis_config()
    mapping = load_registry_mapping()

    raw_df = RegistryCSVIngester(
        os.getenv('KDPI_REGISTRY_DIR', './data/registry'),
        os.getenv('KDPI_REGISTRY_PATTERN', '*.csv'),
        mapping,
    ).ingest()
    table = load_percentile_table(os.getenv('KDPI_TABLE_PATH', './data/kdpi_mapping_table.csv'))

    output_path = os.getenv('KDPI_OUTPUT_PATH', config['analysis']['output_path'])
    outputs = run_kdpi_dca(raw_df, table, config, mapping, output_path=output_path)

    print("\n=== Exclusions ===")
    print(outputs['exclusions'].to_string(index=False))

    print("\n=== Model ===")
    print(outputs['model'])
    print(f"Kaplan-Meier survival at {config['analysis']['horizon_days']} days: {outputs['survival_all']:.4f}")

    print("\n=== Net benefit (every 10th threshold) ===")
    nb_df = outputs['net_benefit']
    print(nb_df[nb_df['threshold'] % 10 == 0].to_string(index=False))

    invalid = nb_df[~nb_df['valid']]
    if not invalid.empty:
        logger.warning(f"{len(invalid)} thresholds have no net benefit: {invalid['status'].unique().tolist()}")

    print(f"\nResults saved to: {output_path}")


if __name__ == "__main__":
    main()
