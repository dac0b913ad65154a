import os
import json
import boto3
import logging
import traceback
from datetime import datetime, timezone
from botocore.exceptions import BotoCoreError, ClientError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

class ErrorHandler:
    """
    Error reporting utility for the processing functions

    Sends an SNS notification for failed requests when ERROR_SNS_TOPIC is set.
    Reporting failures are logged and never change the response to the caller.
    """

    def __init__(self, sns_topic_arn=None, region_name=None):
        """Initialize the error handler"""
        self.sns_topic_arn = sns_topic_arn or os.environ.get('ERROR_SNS_TOPIC')
        self.region_name = region_name or os.environ.get('AWS_REGION', 'us-east-1')

        # Initialize client lazily to avoid initialization errors
        self._sns_client = None

    @property
    def sns(self):
        """Lazy initialization of SNS client"""
        if self._sns_client is None:
            self._sns_client = boto3.client('sns', region_name=self.region_name)
        return self._sns_client

    def record_error(self, request_id, task_type, error_message, error_details=None):
        """
        Send an error notification if a topic is configured

        Args:
            request_id: Request identifier
            task_type: Type of task (e.g., 'image/magick')
            error_message: Human-readable error message
            error_details: Optional detailed error information (stack trace, upstream code, etc.)
        """
        if not self.sns_topic_arn:
            return

        message = {
            'request_id': request_id,
            'task_type': task_type,
            'error_message': error_message,
            'timestamp': datetime.now(timezone.utc).isoformat()
        }
        if error_details:
            message['error_details'] = error_details

        try:
            self.sns.publish(
                TopicArn=self.sns_topic_arn,
                Subject=f"Image Processing Error: {request_id}",
                Message=json.dumps(message, indent=2, default=str)
            )
            logger.info(f"Sent error notification for request {request_id}")
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error sending SNS notification: {str(e)}")
            logger.error(traceback.format_exc())

# Global instance for reuse across invocations
error_handler = ErrorHandler()
