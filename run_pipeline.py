"""
Script to run the KDPI decision-curve analysis pipeline.
"""

import os
import logging
from dotenv import load_dotenv

from pipelines.kdpi_dca_pipeline import kdpi_dca_pipeline


def main():
    load_dotenv()
    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    print("Starting KDPI decision-curve analysis pipeline...")
    print(f"Registry directory: {os.getenv('KDPI_REGISTRY_DIR', './data/registry')}")
    print(f"Percentile table: {os.getenv('KDPI_TABLE_PATH', './data/kdpi_mapping_table.csv')}")
    print(f"Analysis config: {os.getenv('KDPI_CONFIG_PATH', 'src/default_kdpi_config.yml')}")
    print("\n" + "="*60 + "\n")

    # Run the pipeline
    pipeline_run = kdpi_dca_pipeline()

    print("\nPipeline completed successfully!")
    if pipeline_run is not None:
        print(f"Run name: {pipeline_run.name}")


if __name__ == "__main__":
    main()
