"""Module to write the event log to CSV."""

import os

__all__ = ["CSVWriter"]


class CSVWriter:
    """Writes one row of scalars per processed event to a CSV file.

    The header is written with the keys of the first row. Every subsequent
    row must provide the same keys, in any order.
    """

    name = "csv"

    def __init__(self, file_name="larreco_log.csv", overwrite=False):
        """Initialize the basics of the output file.

        Parameters
        ----------
        file_name : str, default 'larreco_log.csv'
            Name of the output CSV file
        overwrite : bool, default False
            If True, overwrite the output file if it already exists
        """
        if not overwrite and os.path.isfile(file_name):
            raise FileExistsError(f"File with name {file_name} already exists.")

        self.file_name = file_name
        self.keys = None

    def create(self, row):
        """Record the keys to be stored and write the header.

        Parameters
        ----------
        row : dict
            First row of the log
        """
        self.keys = list(row.keys())
        with open(self.file_name, "w", encoding="utf-8") as out_file:
            out_file.write(",".join(self.keys) + "\n")

    def append(self, row):
        """Append one row to the CSV file.

        Parameters
        ----------
        row : dict
            Scalar values keyed by column name
        """
        if self.keys is None:
            self.create(row)

        elif set(row.keys()) != set(self.keys):
            missing = set(self.keys).difference(row.keys())
            excess = set(row.keys()).difference(self.keys)
            raise KeyError(
                "Log row keys do not match the CSV header. "
                f"Missing: {sorted(missing)}, new: {sorted(excess)}"
            )

        with open(self.file_name, "a", encoding="utf-8") as out_file:
            out_file.write(",".join(str(row[k]) for k in self.keys) + "\n")
