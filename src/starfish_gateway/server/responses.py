"""S3 XML response bodies."""

from datetime import datetime, timezone
from xml.etree import ElementTree as ET

from starlette.responses import Response

from starfish_gateway.models import BucketInfo, ListingResult, ObjectInfo

S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# S3 error code -> HTTP status
ERROR_STATUS = {
    "InvalidArgument": 400,
    "AccessDenied": 403,
    "NoSuchBucket": 404,
    "NoSuchKey": 404,
    "InternalError": 500,
    "NotImplemented": 501,
}


def format_s3_timestamp(dt: datetime | None) -> str:
    """Format datetime for S3 XML response. Unknown times render as the epoch."""
    return (dt or EPOCH).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def format_http_date(dt: datetime | None) -> str:
    """Format datetime as HTTP-date (RFC 7231)."""
    return (dt or EPOCH).strftime("%a, %d %b %Y %H:%M:%S GMT")


def _tostring(root: ET.Element) -> str:
    return ET.tostring(root, encoding="unicode", xml_declaration=True)


def _add_listing_body(root: ET.Element, listing: ListingResult) -> None:
    for obj in listing.objects:
        contents = ET.SubElement(root, "Contents")
        ET.SubElement(contents, "Key").text = obj.key
        ET.SubElement(contents, "LastModified").text = format_s3_timestamp(obj.last_modified)
        ET.SubElement(contents, "ETag").text = obj.etag
        ET.SubElement(contents, "Size").text = str(obj.size)
        ET.SubElement(contents, "StorageClass").text = "STANDARD"

    for prefix in listing.common_prefixes:
        cp_elem = ET.SubElement(root, "CommonPrefixes")
        ET.SubElement(cp_elem, "Prefix").text = prefix


def build_list_objects_xml(listing: ListingResult, marker: str = "") -> str:
    """Build S3 ListObjects (V1) XML response."""
    root = ET.Element("ListBucketResult", xmlns=S3_NAMESPACE)

    ET.SubElement(root, "Name").text = listing.bucket
    ET.SubElement(root, "Prefix").text = listing.prefix
    ET.SubElement(root, "Marker").text = marker
    ET.SubElement(root, "MaxKeys").text = str(listing.max_keys)
    if listing.delimiter:
        ET.SubElement(root, "Delimiter").text = listing.delimiter
    ET.SubElement(root, "IsTruncated").text = str(listing.is_truncated).lower()
    if listing.is_truncated and listing.next_marker:
        ET.SubElement(root, "NextMarker").text = listing.next_marker

    _add_listing_body(root, listing)
    return _tostring(root)


def build_list_objects_v2_xml(listing: ListingResult, continuation_token: str = "") -> str:
    """Build S3 ListObjectsV2 XML response.

    The next continuation token is the plain last key of the page.
    """
    root = ET.Element("ListBucketResult", xmlns=S3_NAMESPACE)

    ET.SubElement(root, "Name").text = listing.bucket
    ET.SubElement(root, "Prefix").text = listing.prefix
    ET.SubElement(root, "MaxKeys").text = str(listing.max_keys)
    ET.SubElement(root, "KeyCount").text = str(listing.key_count)
    if listing.delimiter:
        ET.SubElement(root, "Delimiter").text = listing.delimiter
    ET.SubElement(root, "IsTruncated").text = str(listing.is_truncated).lower()

    if listing.start_after:
        ET.SubElement(root, "StartAfter").text = listing.start_after
    if continuation_token:
        ET.SubElement(root, "ContinuationToken").text = continuation_token
    if listing.is_truncated and listing.next_marker:
        ET.SubElement(root, "NextContinuationToken").text = listing.next_marker

    _add_listing_body(root, listing)
    return _tostring(root)


def build_list_buckets_xml(buckets: list[BucketInfo], owner: str = "starfish") -> str:
    """Build S3 ListAllMyBucketsResult XML response."""
    root = ET.Element("ListAllMyBucketsResult", xmlns=S3_NAMESPACE)

    owner_elem = ET.SubElement(root, "Owner")
    ET.SubElement(owner_elem, "ID").text = owner
    ET.SubElement(owner_elem, "DisplayName").text = owner

    buckets_elem = ET.SubElement(root, "Buckets")
    for bucket in buckets:
        bucket_elem = ET.SubElement(buckets_elem, "Bucket")
        ET.SubElement(bucket_elem, "Name").text = bucket.name
        ET.SubElement(bucket_elem, "CreationDate").text = format_s3_timestamp(bucket.creation_date)

    return _tostring(root)


def build_error_xml(code: str, message: str, resource: str = "", request_id: str = "") -> str:
    """Build S3 error XML response."""
    root = ET.Element("Error")
    ET.SubElement(root, "Code").text = code
    ET.SubElement(root, "Message").text = message
    ET.SubElement(root, "Resource").text = resource
    ET.SubElement(root, "RequestId").text = request_id
    return _tostring(root)


def xml_response(content: str, status_code: int = 200, headers: dict[str, str] | None = None) -> Response:
    return Response(content=content, status_code=status_code, media_type="application/xml", headers=headers)


def error_response(code: str, message: str, resource: str = "", request_id: str = "") -> Response:
    """S3 error response with the status matching `code`."""
    return xml_response(
        build_error_xml(code, message, resource, request_id),
        status_code=ERROR_STATUS.get(code, 500),
    )


def object_headers(info: ObjectInfo) -> dict[str, str]:
    """Response headers describing one object."""
    return {
        "ETag": info.etag,
        "Last-Modified": format_http_date(info.last_modified),
        "Content-Length": str(info.size),
        "Accept-Ranges": "bytes",
    }
