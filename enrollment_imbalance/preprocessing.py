"""
Data Preprocessing Pipeline
Loads the enrollment spreadsheet, cleans columns and codes the label, and
performs the stratified train/test split.

Statistical transformers (scaling, encoding) are NOT fitted here. They are
returned unfitted by build_feature_transformer() and fitted inside each
branch pipeline on the training partition only.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import category_encoders as ce
import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import OneHotEncoder, StandardScaler

from .config import DROP_COLUMNS, TARGET_COLUMN


POSITIVE_TOKENS = {'1', '1.0', 'yes', 'y', 'true', 'enrolled'}
NEGATIVE_TOKENS = {'0', '0.0', 'no', 'n', 'false', 'not enrolled', 'not_enrolled'}

EXCEL_SUFFIXES = {'.xlsx', '.xls', '.xlsm'}


class DataQualityError(ValueError):
    """Raised when the input data cannot be used as-is."""


class MissingLabelError(DataQualityError):
    """Label column has missing values."""


class LabelCodingError(DataQualityError):
    """Label column is not a two-level outcome."""


class UnseenCategoryError(DataQualityError):
    """Test partition holds categorical levels never seen in training."""


class EnrollmentPreprocessor:
    """
    Prepares the enrollment dataset for the resampling branches.

    Order of operations:
    1. Drop identifier / reference columns (deterministic, safe before split)
    2. Code the label as 0/1 (fails on missing or unexpected values)
    3. Remove rows with missing predictors
    4. Stratified split with a fixed seed
    5. Report categorical levels present in test but not in train
    """

    def __init__(
        self,
        target_column: str = TARGET_COLUMN,
        drop_columns: Optional[List[str]] = None,
        test_size: float = 0.3,
        random_state: int = 42,
        stratify: bool = True,
        sheet_name: Union[int, str] = 0,
        categorical_unique_threshold: int = 10,
        high_cardinality_threshold: int = 50,
        fail_on_unseen_levels: bool = False
    ):
        self.target_column = target_column
        self.drop_columns = list(DROP_COLUMNS) if drop_columns is None else list(drop_columns)
        self.test_size = test_size
        self.random_state = random_state
        self.stratify = stratify
        self.sheet_name = sheet_name
        self.categorical_unique_threshold = categorical_unique_threshold
        self.high_cardinality_threshold = high_cardinality_threshold
        self.fail_on_unseen_levels = fail_on_unseen_levels

        # Feature tracking
        self.numeric_features = None
        self.categorical_features = None
        self.high_cardinality_features = None

    @classmethod
    def from_config(cls, config) -> 'EnrollmentPreprocessor':
        """Build from an ExperimentConfig."""
        return cls(
            target_column=config.data.target_column,
            drop_columns=config.data.drop_columns,
            test_size=config.split.test_size,
            random_state=config.split.random_seed,
            stratify=config.split.stratify,
            sheet_name=config.data.sheet_name,
            categorical_unique_threshold=config.data.categorical_unique_threshold,
            high_cardinality_threshold=config.data.high_cardinality_threshold,
            fail_on_unseen_levels=config.data.fail_on_unseen_levels
        )

    def load_dataset(self, path: Union[str, Path]) -> pd.DataFrame:
        """Read the raw spreadsheet (.xlsx/.xls) or a CSV export of it."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Enrollment data file not found: {path}")

        suffix = path.suffix.lower()
        if suffix in EXCEL_SUFFIXES:
            df = pd.read_excel(path, sheet_name=self.sheet_name)
        elif suffix == '.csv':
            df = pd.read_csv(path)
        else:
            raise ValueError(f"Unsupported file type '{suffix}' for {path}")

        print(f"✓ Loaded {path.name}: {df.shape[0]} rows, {df.shape[1]} columns")
        return df

    def apply_column_controls(self, df: pd.DataFrame) -> pd.DataFrame:
        """Drop identifier and reference columns that are present."""
        to_drop = [c for c in self.drop_columns if c in df.columns]
        df = df.drop(columns=to_drop)

        if to_drop:
            print(f"✓ Dropped identifier/reference columns: {to_drop}")
        missing = [c for c in self.drop_columns if c not in to_drop]
        if missing:
            print(f"⚠ Configured drop columns not found: {missing}")

        return df

    def prepare_target(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Code the label column as integer 0/1.

        Accepts 0/1, booleans and yes/no style strings. Missing labels and
        anything that is not a two-level outcome raise instead of being dropped.
        """
        if self.target_column not in df.columns:
            raise DataQualityError(f"Label column '{self.target_column}' not found")

        df = df.copy()
        tokens = df[self.target_column].astype(str).str.strip().str.lower()
        missing_mask = df[self.target_column].isnull() | (tokens == '')

        n_missing = int(missing_mask.sum())
        if n_missing:
            raise MissingLabelError(
                f"{n_missing} record(s) have no '{self.target_column}' value"
            )

        mapping = {token: 1 for token in POSITIVE_TOKENS}
        mapping.update({token: 0 for token in NEGATIVE_TOKENS})
        coded = tokens.map(mapping)

        unknown = sorted(tokens[coded.isnull()].unique())
        if unknown:
            raise LabelCodingError(
                f"Unexpected '{self.target_column}' values: {unknown}"
            )
        if coded.nunique() != 2:
            raise LabelCodingError(
                f"'{self.target_column}' must contain both classes, found {sorted(coded.unique())}"
            )

        df[self.target_column] = coded.astype(np.int64)
        return df

    def drop_incomplete_rows(self, df: pd.DataFrame) -> pd.DataFrame:
        """Remove records with a missing predictor value."""
        predictors = [c for c in df.columns if c != self.target_column]
        mask = df[predictors].isnull().any(axis=1)

        n_dropped = int(mask.sum())
        if n_dropped:
            print(f"⚠ Removed {n_dropped} rows with missing predictor values")

        return df[~mask]

    def identify_feature_types(
        self,
        X: pd.DataFrame
    ) -> Tuple[List[str], List[str], List[str]]:
        """
        Identify numeric, low-cardinality, and high-cardinality categorical features.

        Descriptive only: no parameters are learned.

        Returns:
            (numeric_features, low_card_categorical, high_card_categorical)
        """
        numeric_features = []
        low_card_categorical = []
        high_card_categorical = []

        for col in X.columns:
            n_unique = X[col].nunique()

            if pd.api.types.is_numeric_dtype(X[col]) and not pd.api.types.is_bool_dtype(X[col]):
                # Coded categoricals (e.g. 1..5) stay categorical
                if n_unique <= self.categorical_unique_threshold:
                    low_card_categorical.append(col)
                else:
                    numeric_features.append(col)
            elif n_unique > self.high_cardinality_threshold:
                high_card_categorical.append(col)
            else:
                low_card_categorical.append(col)

        self.numeric_features = numeric_features
        self.categorical_features = low_card_categorical
        self.high_cardinality_features = high_card_categorical

        print(f"\nFeature Type Identification:")
        print(f"  Numeric: {len(numeric_features)}")
        print(f"  Low-cardinality categorical: {len(low_card_categorical)}")
        print(f"  High-cardinality categorical: {len(high_card_categorical)}")

        return numeric_features, low_card_categorical, high_card_categorical

    def split(
        self,
        X: pd.DataFrame,
        y: pd.Series
    ) -> Tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
        """Stratified split; the same seed always yields the same partitions."""
        return train_test_split(
            X, y,
            test_size=self.test_size,
            random_state=self.random_state,
            stratify=y if self.stratify else None
        )

    def check_unseen_levels(
        self,
        X_train: pd.DataFrame,
        X_test: pd.DataFrame
    ) -> Dict[str, List]:
        """
        Find categorical levels that appear in test but never in train.

        The encoders map such levels to the reference category, so they are
        reported here rather than silently absorbed.
        """
        categorical = (self.categorical_features or []) + (self.high_cardinality_features or [])

        unseen = {}
        for col in categorical:
            levels = sorted(set(X_test[col].unique()) - set(X_train[col].unique()))
            if levels:
                unseen[col] = levels

        if unseen:
            for col, levels in unseen.items():
                print(f"⚠ Column '{col}' has {len(levels)} level(s) unseen in train: {levels[:10]}")
            if self.fail_on_unseen_levels:
                raise UnseenCategoryError(
                    f"Test partition has levels unseen in train for: {sorted(unseen)}"
                )
        else:
            print("✓ No unseen categorical levels in test")

        return unseen

    def build_feature_transformer(self) -> ColumnTransformer:
        """
        Unfitted column transformer for the identified feature types.

        - Numeric: StandardScaler (zero mean, unit variance)
        - Low cardinality: one-hot, first level as reference
        - High cardinality: target encoding

        Fit it on training data only.
        """
        if self.numeric_features is None:
            raise RuntimeError("identify_feature_types() must run before building the transformer")

        transformers = []
        if self.numeric_features:
            transformers.append(('numeric', StandardScaler(), self.numeric_features))
        if self.categorical_features:
            transformers.append((
                'categorical',
                OneHotEncoder(drop='first', handle_unknown='ignore', sparse_output=False),
                self.categorical_features
            ))
        if self.high_cardinality_features:
            transformers.append((
                'target_encoded',
                ce.TargetEncoder(cols=self.high_cardinality_features, smoothing=10),
                self.high_cardinality_features
            ))

        if not transformers:
            raise DataQualityError("No predictor columns left after column controls")

        return ColumnTransformer(transformers, remainder='drop')

    def fit_split(self, df: pd.DataFrame) -> Dict:
        """
        Complete preparation: column controls, label coding, row removal,
        the stratified split and feature typing on the training partition.

        Returns:
            Dictionary with the train/test partitions and feature metadata
        """
        print("=" * 80)
        print("DATA PREPARATION")
        print("=" * 80)
        print(f"Initial dataset shape: {df.shape}")

        df = self.apply_column_controls(df)
        df = self.prepare_target(df)
        df = self.drop_incomplete_rows(df)

        X = df.drop(columns=[self.target_column])
        y = df[self.target_column]

        X_train, X_test, y_train, y_test = self.split(X, y)

        # Typed on train only so test rows cannot move a column across a threshold
        numeric, low_card, high_card = self.identify_feature_types(X_train)

        # Uniform string levels for the encoders and samplers
        X_train = X_train.copy()
        X_test = X_test.copy()
        for col in low_card + high_card:
            X_train[col] = X_train[col].astype(str)
            X_test[col] = X_test[col].astype(str)

        print(f"\nData splits:")
        print(f"  Train: {len(X_train)} ({len(X_train)/len(X)*100:.1f}%)")
        print(f"  Test:  {len(X_test)} ({len(X_test)/len(X)*100:.1f}%)")
        print(f"  Train enrolled rate: {y_train.mean():.2%}")
        print(f"  Test enrolled rate:  {y_test.mean():.2%}")

        unseen = self.check_unseen_levels(X_train, X_test)

        return {
            'X_train': X_train,
            'X_test': X_test,
            'y_train': y_train,
            'y_test': y_test,
            'numeric_features': numeric,
            'categorical_features': low_card,
            'high_cardinality_features': high_card,
            'unseen_levels': unseen,
            'n_records': len(X)
        }
