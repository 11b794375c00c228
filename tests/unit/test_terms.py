"""
Unit tests for dhmodeler.core.terms module.

Tests term construction, validation and Diffie-Hellman canonicalisation.
"""

import pytest

from dhmodeler.core.exceptions import TermError
from dhmodeler.core.terms import (
    END,
    GEN,
    Agent,
    Exp,
    LtK,
    NonceF,
    Number,
    RunId,
    Term,
    gexp,
    is_payload,
    term_sort_key,
)


class TestAtoms:
    """Tests for atomic terms."""

    def test_agent_equality(self):
        assert Agent("A") == Agent("A")
        assert Agent("A") != Agent("B")

    def test_agent_requires_name(self):
        with pytest.raises(ValueError):
            Agent("")

    def test_number_requires_int(self):
        with pytest.raises(TypeError):
            Number("1")

    def test_nonce_requires_run_id(self):
        with pytest.raises(TypeError):
            NonceF("ra")

    def test_generator_is_singleton_value(self):
        assert GEN == type(GEN)()
        assert hash(GEN) == hash(type(GEN)())

    def test_terms_hashable(self):
        terms = {Agent("A"), Number(1), NonceF(RunId("r")), GEN, END}
        assert Agent("A") in terms
        assert len(terms) == 5

    def test_run_ids_ordered(self):
        assert sorted([RunId("rb"), RunId("ra")]) == [RunId("ra"), RunId("rb")]


class TestExp:
    """Tests for exponentiation."""

    def test_exp_requires_terms(self):
        with pytest.raises(TypeError):
            Exp(GEN, 3)
        with pytest.raises(TypeError):
            Exp("g", Number(3))

    def test_single_exponential_structural(self):
        x = NonceF(RunId("ra"))
        assert gexp(x) == Exp(GEN, x)
        assert gexp(x) != gexp(NonceF(RunId("rb")))

    def test_double_exponential_commutes(self):
        x = NonceF(RunId("ra"))
        y = NonceF(RunId("rb"))
        left = Exp(gexp(x), y)
        right = Exp(gexp(y), x)
        assert left == right
        assert hash(left) == hash(right)

    def test_canonical_order(self):
        x = NonceF(RunId("ra"))
        y = NonceF(RunId("rb"))
        key = Exp(gexp(y), x)
        assert key.base == gexp(x)
        assert key.exponent == y
        assert key.is_double

    def test_commutation_only_over_generator(self):
        a, b = Number(2), Number(3)
        assert Exp(Exp(Agent("A"), a), b) != Exp(Exp(Agent("A"), b), a)

    def test_distinct_keys_differ(self):
        x = NonceF(RunId("ra"))
        y = NonceF(RunId("rb"))
        z = NonceF(RunId("rc"))
        assert Exp(gexp(x), y) != Exp(gexp(x), z)

    def test_str(self):
        x = NonceF(RunId("ra"))
        assert str(gexp(x)) == "g^N(ra)"


class TestHelpers:
    """Tests for payload and ordering helpers."""

    def test_long_term_key_not_payload(self):
        assert not is_payload(LtK(Agent("A")))
        assert not is_payload(Exp(GEN, LtK(Agent("A"))))

    def test_protocol_values_are_payload(self):
        x = NonceF(RunId("ra"))
        for term in (Agent("A"), Number(0), x, GEN, END, gexp(x), Exp(gexp(x), x)):
            assert is_payload(term)

    def test_sort_key_total(self):
        terms = [gexp(Number(1)), Agent("B"), Number(3), END, GEN, Agent("A")]
        ordered = sorted(terms, key=term_sort_key)
        assert ordered[0] == Agent("A")
        assert ordered[-1] == gexp(Number(1))

    def test_sort_key_rejects_foreign_terms(self):
        class Stray(Term):
            __slots__ = ()

        with pytest.raises(TermError):
            term_sort_key(Stray())
