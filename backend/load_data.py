import argparse
import logging
import time

from database import get_db, init_db, insert_measurements, fetch_stats

logger = logging.getLogger(__name__)

HEADER = "Time,Metric,Path,Value"

def parse_line(line: str):
    """Parse a `time_ms,metric,path,value` line, paths may contain commas."""
    parts = line.strip().split(',')
    if len(parts) < 4:
        raise ValueError(f"expected at least 4 columns, got {len(parts)}")
    return int(parts[0]), parts[1], ",".join(parts[2:-1]), float(parts[-1])

def load_data_from_csv(csv_file_path, batch_size=100000) -> int:
    """
    Load measurements from a CSV file into the database.

    Args:
        csv_file_path: Path to the CSV file
        batch_size: Number of records to insert in a single batch

    Returns:
        int: Number of inserted rows
    """
    logger.info("Loading data from %s...", csv_file_path)
    start_time = time.time()

    # Initialize the database
    init_db()

    total_rows = 0
    batch = []

    with open(csv_file_path, 'r') as file:
        # Skip header
        header = file.readline()
        if not header.startswith(HEADER):
            logger.warning("CSV file does not have the expected header. Continuing anyway.")
            # Reset file pointer to beginning
            file.seek(0)

        # Process data in batches
        with get_db() as conn:
            for line in file:
                if not line.strip():
                    continue

                try:
                    batch.append(parse_line(line))
                except ValueError as e:
                    logger.warning("Error processing line: %s. Error: %s", line.strip(), e)
                    continue

                if len(batch) >= batch_size:
                    total_rows += insert_measurements(conn, batch)
                    logger.info("Inserted %d rows so far...", total_rows)
                    batch = []

            # Insert any remaining records
            total_rows += insert_measurements(conn, batch)

    duration = time.time() - start_time
    logger.info("Data loading completed. Inserted %d rows in %.2f seconds.", total_rows, duration)

    # Get some stats about the data
    with get_db() as conn:
        stats = fetch_stats(conn)

    logger.info("Total records in database: %s", stats["count"])
    logger.info("Time range: %s to %s", stats["min_time_ms"], stats["max_time_ms"])
    logger.info("Metrics: %s", ", ".join(stats["metrics"]))

    return total_rows

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Load pipeline measurements from a CSV file")
    parser.add_argument("csv_file", nargs="?", default="../measurements.csv")
    parser.add_argument("--batch-size", type=int, default=100000)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    load_data_from_csv(args.csv_file, args.batch_size)
