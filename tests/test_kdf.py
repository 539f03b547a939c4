"""
Tests for legacy passphrase key derivation
"""

import pytest

from waitroom.crypto import derive_key_material, DerivedKeyMaterial


class TestOpenSSLCompatibility:
    """Expected values from `openssl enc -aes-256-cbc -md md5 -S <salt> -pass pass:<p> -P`"""

    @pytest.mark.parametrize("passphrase,salt,key,iv", [
        (
            b"hunter2",
            "0102030405060708",
            "DD076B4BCD49C33676D8185C3DD67E935D3B7324FF7D8E1074D9734059F0971E",
            "FEB9D83342D7AF5BEAE1FCD7AA9415A6",
        ),
        (
            b"waitroom-secret",
            "a1b2c3d4e5f60718",
            "7FFE388EE299F3C1FC5095535803EF07050588242D9F3377627973510626B44D",
            "8C6C928EC1DC2D4213E347F76041107B",
        ),
        (
            b"hunter2",
            "cab7b5d6a9587537",
            "01E3C3348F9DFDB2B648AD0DE2E16B9345C197283A0DC1C2EF44598131D5F2EE",
            "1B79B6BE9E3C28BD9EEDE1FC14F8C143",
        ),
    ])
    def test_matches_openssl(self, passphrase, salt, key, iv):
        material = derive_key_material(passphrase, bytes.fromhex(salt))

        assert material.key == bytes.fromhex(key)
        assert material.iv == bytes.fromhex(iv)


class TestDerivationProperties:

    def test_lengths(self):
        material = derive_key_material(b"secret", b"12345678")
        assert len(material.key) == 32
        assert len(material.iv) == 16

    def test_deterministic(self):
        first = derive_key_material(b"secret", b"12345678")
        second = derive_key_material(b"secret", b"12345678")
        assert first == second

    def test_salt_bit_flip_changes_output(self):
        base = derive_key_material(b"secret", b"\x00" * 8)
        flipped = derive_key_material(b"secret", b"\x01" + b"\x00" * 7)

        assert base.key != flipped.key
        assert base.iv != flipped.iv
        # Digest avalanche: nearly every byte differs
        differing = sum(a != b for a, b in zip(base.key + base.iv, flipped.key + flipped.iv))
        assert differing > 40

    def test_passphrase_change_changes_output(self):
        base = derive_key_material(b"secret", b"12345678")
        other = derive_key_material(b"secres", b"12345678")

        assert base.key != other.key
        assert base.iv != other.iv

    def test_custom_lengths(self):
        material = derive_key_material(b"secret", b"12345678", key_len=16, iv_len=16)
        longer = derive_key_material(b"secret", b"12345678")

        assert len(material.key) == 16
        # The material stream is the same, only sliced differently
        assert material.key == longer.key[:16]
        assert material.iv == longer.key[16:32]

    def test_repr_hides_key_material(self):
        material = derive_key_material(b"secret", b"12345678")
        assert repr(material) == "DerivedKeyMaterial()"

    def test_is_frozen(self):
        material = derive_key_material(b"secret", b"12345678")
        assert isinstance(material, DerivedKeyMaterial)
        with pytest.raises(AttributeError):
            material.key = b"x" * 32
