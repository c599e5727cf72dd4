"""
Message Publisher

HTTP API that fans messages out to Kafka, SNS and SQS, plus the workers
that consume them back.
"""

__version__ = "1.0.0"
__author__ = "YuDev"
__description__ = "Message Publisher API and workers for Kafka, SNS and SQS"
