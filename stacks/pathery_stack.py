#!/usr/bin/env python3
import os

from aws_cdk import (
    Stack,
    Tags,
    aws_apigateway as apigw,
    aws_cloudwatch as cloudwatch,
    aws_dynamodb as dynamodb,
    aws_ec2 as ec2,
    aws_efs as efs,
    aws_lambda as lambda_,
    aws_lambda_event_sources as event_sources,
    aws_logs as logs,
    aws_sqs as sqs,
    Duration,
    RemovalPolicy,
    CfnOutput,
)
from constructs import Construct

INDEX_MOUNT_PATH = "/mnt/pathery-data"

INDEX_WRITER_BINARY = "index-writer-worker"

# (binary, construct id, HTTP method, resource path)
SERVICE_HANDLERS = (
    ("post-index", "PostIndexFunction", "POST", "index/{index_id}"),
    ("batch-index", "BatchIndexFunction", "POST", "index/{index_id}/batch"),
    ("query-index", "QueryIndexFunction", "POST", "index/{index_id}/query"),
    ("stats-index", "StatsIndexFunction", "GET", "index/{index_id}/stats"),
)


class PatheryStack(Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        env_name: str = "dev",
        service_name: str = "pathery",
        code_root: str = os.path.join("target", "lambda"),
        retain_data: bool = False,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.env_name = env_name
        self.service_name = service_name
        self.code_root = code_root
        removal_policy = RemovalPolicy.RETAIN if retain_data else RemovalPolicy.DESTROY

        # File store table (pk = store|<id>|..., sk = file_header|<path> ...)
        self.file_store_table = dynamodb.Table(
            self,
            "FileStoreTable",
            partition_key=dynamodb.Attribute(name="pk", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="sk", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=removal_policy,
        )

        # Network for the EFS mount
        self.vpc = ec2.Vpc(
            self,
            "PatheryVpc",
            max_azs=2,
            nat_gateways=1,
        )

        # Index directories live on EFS
        self.file_system = efs.FileSystem(
            self,
            "IndexFileSystem",
            vpc=self.vpc,
            encrypted=True,
            removal_policy=removal_policy,
        )

        self.access_point = self.file_system.add_access_point(
            "IndexAccessPoint",
            path="/pathery-data",
            create_acl=efs.Acl(owner_uid="1001", owner_gid="1001", permissions="750"),
            posix_user=efs.PosixUser(uid="1001", gid="1001"),
        )

        # Dead Letter Queue for index writes that keep failing
        self.dlq = sqs.Queue(
            self,
            "IndexWriterDLQ",
            fifo=True,
            retention_period=Duration.days(14),
        )

        # One message group per index keeps a single writer per index
        self.index_writer_queue = sqs.Queue(
            self,
            "IndexWriterQueue",
            fifo=True,
            content_based_deduplication=True,
            visibility_timeout=Duration.minutes(6),
            dead_letter_queue=sqs.DeadLetterQueue(max_receive_count=3, queue=self.dlq),
        )

        self.index_writer = self._rust_function(
            "IndexWriterFunction",
            INDEX_WRITER_BINARY,
            timeout=Duration.minutes(1),
            memory_size=1024,
        )
        self.index_writer.add_event_source(
            event_sources.SqsEventSource(self.index_writer_queue, batch_size=10)
        )
        self.file_store_table.grant_read_write_data(self.index_writer)

        # REST API, one function per operation
        self.api = apigw.RestApi(
            self,
            "PatheryApi",
            rest_api_name=f"{service_name}-{env_name}",
            description=f"{service_name} search API ({env_name})",
            deploy_options=apigw.StageOptions(stage_name=env_name),
        )

        self.service_functions = {}
        for binary, function_id, method, path in SERVICE_HANDLERS:
            function = self._rust_function(
                function_id,
                binary,
                timeout=Duration.seconds(29),
                memory_size=512,
            )
            self.index_writer_queue.grant_send_messages(function)
            self.file_store_table.grant_read_write_data(function)

            resource = self.api.root.resource_for_path(path)
            resource.add_method(method, apigw.LambdaIntegration(function))
            self.service_functions[binary] = function

        # DLQ Messages Alarm
        self.dlq_alarm = cloudwatch.Alarm(
            self,
            "IndexWriterDLQAlarm",
            alarm_description="Index writes are landing in the dead letter queue",
            metric=self.dlq.metric_approximate_number_of_messages_visible(
                period=Duration.minutes(5),
                statistic="Maximum",
            ),
            threshold=1,
            evaluation_periods=1,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )

        Tags.of(self).add("Environment", env_name)

        # Outputs
        CfnOutput(
            self,
            "ApiUrl",
            value=self.api.url,
            description="Pathery REST API endpoint",
        )

        CfnOutput(
            self,
            "FileStoreTableName",
            value=self.file_store_table.table_name,
            description="DynamoDB table backing the index file store",
        )

        CfnOutput(
            self,
            "IndexWriterQueueUrl",
            value=self.index_writer_queue.queue_url,
            description="FIFO queue feeding the index writer",
        )

    def _rust_function(
        self, construct_id: str, binary: str, timeout: Duration, memory_size: int
    ) -> lambda_.Function:
        """Lambda running a `cargo lambda build` binary from <code_root>/<binary>."""
        return lambda_.Function(
            self,
            construct_id,
            runtime=lambda_.Runtime.PROVIDED_AL2023,
            architecture=lambda_.Architecture.ARM_64,
            handler="bootstrap",
            code=lambda_.Code.from_asset(os.path.join(self.code_root, binary)),
            timeout=timeout,
            memory_size=memory_size,
            vpc=self.vpc,
            filesystem=lambda_.FileSystem.from_efs_access_point(
                self.access_point, INDEX_MOUNT_PATH
            ),
            environment={
                "PATHERY_ENV": self.env_name,
                "TABLE_NAME": self.file_store_table.table_name,
                "INDEX_WRITER_QUEUE_URL": self.index_writer_queue.queue_url,
                "INDEX_ROOT": INDEX_MOUNT_PATH,
                "RUST_LOG": "info",
            },
            log_retention=logs.RetentionDays.ONE_MONTH,
        )
