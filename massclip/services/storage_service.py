"""Cloudflare R2 object storage through the S3 API."""

import re
import time
import uuid

import boto3
from botocore.config import Config

_FILENAME_RE = re.compile(r'[^a-zA-Z0-9.-]')


def build_client(config):
    return boto3.client(
        's3',
        endpoint_url=config.r2_endpoint or None,
        aws_access_key_id=config.r2_access_key_id or None,
        aws_secret_access_key=config.r2_secret_access_key or None,
        region_name='auto',
        config=Config(signature_version='s3v4', s3={'addressing_style': 'path'}),
    )


def sanitize_filename(filename):
    return _FILENAME_RE.sub('_', str(filename or '').strip()) or 'file'


def build_object_key(prefix, owner, category, filename, now_ms=None, token=None):
    safe_name = sanitize_filename(filename)
    extension = safe_name.rsplit('.', 1)[-1].lower() if '.' in safe_name else 'bin'
    now_ms = int(time.time() * 1000) if now_ms is None else int(now_ms)
    token = token or uuid.uuid4().hex[:10]
    return f"{prefix}/{owner}/{category}/{now_ms}_{token}.{extension}"


def public_url_for(key, *, public_base='', bucket=''):
    if public_base:
        return f"{public_base.rstrip('/')}/{key}"
    return f"https://pub-{bucket}.r2.dev/{key}"


def create_presigned_upload(client, *, bucket, key, content_type, expires_in=3600):
    return client.generate_presigned_url(
        'put_object',
        Params={'Bucket': bucket, 'Key': key, 'ContentType': content_type},
        ExpiresIn=int(expires_in),
    )


def delete_object(client, *, bucket, key):
    client.delete_object(Bucket=bucket, Key=key)
