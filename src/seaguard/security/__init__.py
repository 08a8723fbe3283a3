from .crypto import DecryptionError, FieldCipher, generate_key, hash_field, mask

__all__ = ["DecryptionError", "FieldCipher", "generate_key", "hash_field", "mask"]
