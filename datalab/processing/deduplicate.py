from typing import Set

from datasketch import MinHash, MinHashLSH

from .records import fingerprint_hash


class ExactDeduplicator:
    """Keep the first record per fingerprint hash."""

    def __init__(self):
        self.seen_hashes: Set[str] = set()

    def is_duplicate(self, text: str) -> bool:
        """Check and remember a fingerprint. Empty fingerprints never match."""
        if not text:
            return False
        text_hash = fingerprint_hash(text)
        if text_hash in self.seen_hashes:
            return True
        self.seen_hashes.add(text_hash)
        return False


class TextDeduplicator:
    """Remove near-duplicate fingerprints with MinHash over character n-grams."""

    def __init__(
        self,
        num_perm: int = 128,
        threshold: float = 0.85,
        ngram_size: int = 5
    ):
        """
        Args:
            num_perm: Number of permutations for MinHash
            threshold: Jaccard similarity threshold (0-1)
            ngram_size: Size of character n-grams
        """
        self.num_perm = num_perm
        self.threshold = threshold
        self.ngram_size = ngram_size
        self.lsh = MinHashLSH(
            threshold=threshold,
            num_perm=num_perm
        )
        self.kept = {}

    def create_minhash(self, text: str) -> MinHash:
        """Create MinHash from text."""
        m = MinHash(num_perm=self.num_perm)

        if len(text) < self.ngram_size:
            m.update(text.encode('utf-8'))
            return m

        # Character n-grams
        for i in range(len(text) - self.ngram_size + 1):
            ngram = text[i:i + self.ngram_size]
            m.update(ngram.encode('utf-8'))

        return m

    def is_duplicate(self, key: str, text: str) -> bool:
        """
        Check `text` against previously kept texts; keep it under `key` if unique.

        LSH buckets only propose candidates, a candidate counts as a match when
        its estimated Jaccard similarity reaches the threshold.
        """
        if not text:
            return False

        minhash = self.create_minhash(text)
        for candidate in self.lsh.query(minhash):
            if self.kept[candidate].jaccard(minhash) >= self.threshold:
                return True

        self.lsh.insert(key, minhash)
        self.kept[key] = minhash
        return False
