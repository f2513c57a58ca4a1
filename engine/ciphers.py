"""Named cipher schemes used for room clues and the decode stage."""

from __future__ import annotations

from enum import Enum


class CipherScheme(str, Enum):
    MORSE = "MORSE"
    CAESAR = "CAESAR"
    BINARY = "BINARY"
    SUBSTITUTION = "SUBSTITUTION"   # A1Z26


MORSE_CODE = {
    "A": ".-", "B": "-...", "C": "-.-.", "D": "-..", "E": ".", "F": "..-.",
    "G": "--.", "H": "....", "I": "..", "J": ".---", "K": "-.-", "L": ".-..",
    "M": "--", "N": "-.", "O": "---", "P": ".--.", "Q": "--.-", "R": ".-.",
    "S": "...", "T": "-", "U": "..-", "V": "...-", "W": ".--", "X": "-..-",
    "Y": "-.--", "Z": "--..",
    "0": "-----", "1": ".----", "2": "..---", "3": "...--", "4": "....-",
    "5": ".....", "6": "-....", "7": "--...", "8": "---..", "9": "----.",
    ",": "--..--", ".": ".-.-.-", "?": "..--..",
}
_MORSE_REVERSE = {code: char for char, code in MORSE_CODE.items()}

CAESAR_SHIFT = 3


def encode_morse(text: str) -> str:
    """Encode text as Morse: letters separated by spaces, words by ' / '.

    Raises:
        ValueError: If the text contains a character with no Morse code.
    """
    words = []
    for word in text.upper().split():
        try:
            words.append(" ".join(MORSE_CODE[ch] for ch in word))
        except KeyError as e:
            raise ValueError(f"Cannot encode {e.args[0]!r} as Morse") from None
    return " / ".join(words)


def decode_morse(encoded: str) -> str:
    words = []
    for word in encoded.strip().split("/"):
        letters = []
        for code in word.split():
            if code not in _MORSE_REVERSE:
                raise ValueError(f"Unknown Morse sequence: {code}")
            letters.append(_MORSE_REVERSE[code])
        words.append("".join(letters))
    return " ".join(w for w in words if w)


def _shift(text: str, shift: int) -> str:
    out = []
    for ch in text.upper():
        if "A" <= ch <= "Z":
            out.append(chr((ord(ch) - ord("A") + shift) % 26 + ord("A")))
        else:
            out.append(ch)
    return "".join(out)


def encode_binary(text: str) -> str:
    return " ".join(format(ord(ch), "08b") for ch in text.upper())


def decode_binary(encoded: str) -> str:
    try:
        return "".join(chr(int(group, 2)) for group in encoded.split())
    except ValueError:
        raise ValueError(f"Invalid binary group in: {encoded}") from None


def encode_a1z26(text: str) -> str:
    words = []
    for word in text.upper().split():
        if not word.isalpha():
            raise ValueError(f"A1Z26 only encodes letters, got {word!r}")
        words.append("-".join(str(ord(ch) - ord("A") + 1) for ch in word))
    return " ".join(words)


def decode_a1z26(encoded: str) -> str:
    words = []
    for word in encoded.split():
        letters = []
        for number in word.split("-"):
            if not number.isdigit() or not 1 <= int(number) <= 26:
                raise ValueError(f"Invalid A1Z26 number: {number}")
            letters.append(chr(int(number) - 1 + ord("A")))
        words.append("".join(letters))
    return " ".join(words)


def encode(scheme: CipherScheme, text: str) -> str:
    """Encode plaintext under the named scheme."""
    if scheme == CipherScheme.MORSE:
        return encode_morse(text)
    if scheme == CipherScheme.CAESAR:
        return _shift(text, CAESAR_SHIFT)
    if scheme == CipherScheme.BINARY:
        return encode_binary(text)
    if scheme == CipherScheme.SUBSTITUTION:
        return encode_a1z26(text)
    raise ValueError(f"Unknown cipher scheme: {scheme}")


def decode(scheme: CipherScheme, encoded: str) -> str:
    """Decode ciphertext produced by :func:`encode`."""
    if scheme == CipherScheme.MORSE:
        return decode_morse(encoded)
    if scheme == CipherScheme.CAESAR:
        return _shift(encoded, -CAESAR_SHIFT)
    if scheme == CipherScheme.BINARY:
        return decode_binary(encoded)
    if scheme == CipherScheme.SUBSTITUTION:
        return decode_a1z26(encoded)
    raise ValueError(f"Unknown cipher scheme: {scheme}")
