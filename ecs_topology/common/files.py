# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Functions to manage a template and whether it should be stored in S3
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_topology.common.settings import TopologySettings

from os import makedirs, path

from botocore.exceptions import ClientError

from ecs_topology.common.logging import LOG

FILE_PREFIX = "ecs-topology"
JSON_MIME = "application/json"
YAML_MIME = "application/x-yaml"
MAX_TEMPLATE_BODY_SIZE = 51200


def upload_file(
    body,
    bucket_name,
    file_name,
    settings,
    prefix=None,
    mime=None,
):
    """Upload body to a file in s3 with given prefix and bucket_name

    :param body: Template body, would come from Topology.render()
    :type body: str
    :param bucket_name: name of the bucket to upload the file to
    :type bucket_name: str
    :param file_name: Name of the file
    :type file_name: str
    :param settings: the execution settings, holding the boto3 session
    :type settings: ecs_topology.common.settings.TopologySettings
    :param prefix: override default prefix for the file in S3
    :type prefix: str, optional
    :returns: url_path, the https://s3.amazonaws.com/ URL to the file
    :rtype: str
    """
    if mime is None:
        mime = JSON_MIME
    if prefix is None:
        prefix = f"{FILE_PREFIX}/{settings.name}/{settings.environment}"

    key = f"{prefix}/{file_name}"
    client = settings.session.client("s3")
    client.put_object(
        Body=body,
        Key=key,
        Bucket=bucket_name,
        ContentEncoding="utf-8",
        ContentType=mime,
        ServerSideEncryption="AES256",
    )
    return f"https://s3.amazonaws.com/{bucket_name}/{key}"


class FileArtifact:
    """
    Class to handle the rendered template.
    It will allow to upload the content to S3 or write to local filesystem.
    It also handles CloudFormation templates validation.

    :ivar str url: The URL in S3 where the file was uploaded to
    :ivar str body: The content of the FileArtifact
    :ivar str file_name: the base name of the file
    :ivar str mime: MIME-type of the file
    :ivar str file_path: Output file path for the FileArtifact
    """

    def __init__(self, file_name: str, body: str, settings: TopologySettings):
        if not isinstance(body, str):
            raise TypeError("body must be of type", str, "got", type(body))
        self.body = body
        self.url = None
        self.file_name = f"{file_name}.{settings.format}"
        self.mime = YAML_MIME if settings.format == "yaml" else JSON_MIME
        self.file_path = path.join(settings.output_dir, self.file_name)

    def __repr__(self):
        return self.file_path

    def upload(self, settings: TopologySettings) -> str:
        """
        Method to handle uploading the file to S3.
        """
        self.url = upload_file(
            body=self.body,
            settings=settings,
            bucket_name=settings.bucket_name,
            file_name=self.file_name,
            mime=self.mime,
        )
        LOG.info(f"{self.file_name} uploaded successfully to {self.url}")
        return self.url

    def write(self, settings: TopologySettings) -> str:
        """
        Method to write the file to local filesystem
        """
        makedirs(settings.output_dir, exist_ok=True)
        with open(self.file_path, "w") as template_fd:
            template_fd.write(self.body)
        LOG.info(
            f"Template {self.file_name} written successfully at {path.abspath(self.file_path)}"
        )
        return self.file_path

    def validate(self, settings: TopologySettings) -> None:
        """
        Method to validate the CloudFormation template, either via URL once uploaded to S3 or via TemplateBody
        """
        client = settings.session.client("cloudformation")
        try:
            if self.url:
                client.validate_template(TemplateURL=self.url)
            elif len(self.body) >= MAX_TEMPLATE_BODY_SIZE:
                LOG.warning(
                    f"Template body for {self.file_name} is too big for local validation."
                    " Upload it to S3 to validate it."
                )
                return
            else:
                client.validate_template(TemplateBody=self.body)
            LOG.info(f"Template {self.file_name} was validated successfully by CFN")
        except ClientError as error:
            LOG.error(error)
            LOG.error(f"Failed validation template is {self.file_path}")
            raise
