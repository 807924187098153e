from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, OperationFailure
import pymongo
from datetime import datetime
from database.models import TransactionRecord
from utils.logger import get_logger

class MongoDBManager:
    """Mirrors transaction records into MongoDB; the CSV log stays authoritative."""

    def __init__(self, config: dict, client_factory=MongoClient):
        self.logger = get_logger(__name__)
        self.config = config
        self.client_factory = client_factory
        self._connect()

    def _connect(self):
        try:
            self.mongo_client = self.client_factory(self.config['mongodb_connection_string'])
            self.mongo_client.admin.command('ping')

            self.db = self.mongo_client[self.config['mongodb_database_name']]
            self.transactions_collection = self.db[self.config['mongodb_transactions_collection']]

            self._setup_indexes()
            self.logger.info(f"MongoDB connection established: {self.config['mongodb_database_name']}")

        except ConnectionFailure as e:
            self.logger.error(f"Failed to connect to MongoDB: {e}")
            raise e

    def _setup_indexes(self):
        try:
            self.transactions_collection.create_index([
                ("vehicle_key", pymongo.ASCENDING),
                ("timestamp", pymongo.DESCENDING)
            ])
            self.logger.info("MongoDB indexes created successfully")

        except Exception as e:
            self.logger.warning(f"Failed to create some indexes: {e}")

    def save_transaction(self, record: TransactionRecord):
        try:
            document = {
                "timestamp": record.timestamp,
                "vehicle_key": record.vehicle_key,
                "payment_method": record.payment_method,
                "amount": str(record.amount),
                "balance_remaining": str(record.balance_remaining),
                "created_at": datetime.now()
            }

            result = self.transactions_collection.insert_one(document)
            self.logger.info(f"Mirrored transaction for {record.vehicle_key}, ObjectId: {result.inserted_id}")

        except OperationFailure as e:
            self.logger.error(f"MongoDB operation failed while saving transaction: {e}")
        except Exception as e:
            self.logger.error(f"Failed to mirror transaction to MongoDB: {e}")
