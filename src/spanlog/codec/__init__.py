"""Wire formats for trace and log batches."""

from spanlog.codec.otlp_json import OTLPJsonError, decode_trace_batch, encode_log_batch

__all__ = [
    "OTLPJsonError",
    "decode_trace_batch",
    "encode_log_batch",
]
