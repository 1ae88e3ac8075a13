from .codec import decode_snapshot, encode_snapshot, snapshot_to_dict

__all__ = ["decode_snapshot", "encode_snapshot", "snapshot_to_dict"]
