"""Data ingestion module for the KDPI decision-curve analysis
This module loads transplant registry exports from one or more CSV files
"""

import os
import glob
import logging
import pandas as pd
from abc import ABC, abstractmethod
from typing import List, Dict, Optional

from src.config import DEFAULT_REGISTRY_MAPPING

logger = logging.getLogger(__name__)

DATE_FIELDS = ['transplant_date', 'graft_failure_date', 'death_date', 'last_followup_date']


class DataIngester(ABC):
    """Base class for data ingesters"""

    @abstractmethod
    def ingest_data(self):
        """Method to ingest data"""
        pass


class RegistryCSVIngester(DataIngester):
    """Ingests transplant registry CSV files, output a raw dataframe with parsed dates"""

    def __init__(self, directory: str, file_pattern: str = "*.csv",
                 mapping: Optional[Dict[str, str]] = None):
        """
        Initialize the registry ingester.

        Args:
            directory: Directory containing registry CSV files
            file_pattern: Glob pattern to match CSV files (default: "*.csv")
            mapping: Registry column mapping, used to find the date columns
        """
        self.directory = directory
        self.file_pattern = file_pattern
        self.mapping = mapping or DEFAULT_REGISTRY_MAPPING

    def ingest_data(self) -> List[pd.DataFrame]:
        """
        Load every matching CSV file.

        Returns:
            List of DataFrames, one for each CSV file, sorted by file name

        Raises:
            ValueError: If no file matches the pattern
        """
        csv_files = sorted(glob.glob(os.path.join(self.directory, self.file_pattern)))
        if not csv_files:
            raise ValueError(f"No CSV files found in {self.directory} matching pattern {self.file_pattern}")

        data_frames = []
        for file in csv_files:
            df = pd.read_csv(file, low_memory=False)
            df['source_file'] = os.path.basename(file)
            data_frames.append(df)
            print(f"Loaded {file} with {len(df)} rows")

        return data_frames

    def ingest(self) -> pd.DataFrame:
        """
        Load and combine all registry files, parsing the mapped date columns.

        Returns:
            Combined DataFrame with one row per transplant
        """
        data_frames = self.ingest_data()
        combined_df = pd.concat(data_frames, ignore_index=True)

        for field in DATE_FIELDS:
            col = self.mapping.get(field)
            if col in combined_df.columns:
                combined_df[col] = pd.to_datetime(combined_df[col], errors='coerce')
            else:
                logger.warning(f"Registry has no '{col}' column for {field}")

        print(f"Combined {len(data_frames)} files with a total of {len(combined_df)} rows")
        return combined_df
