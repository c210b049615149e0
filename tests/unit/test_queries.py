"""
Tests for query.py - Read-only queries and pagination

Tests:
- contract / borrower / collateral / offer info
- Descending pagination with exclusive cursors
- next_* cursor rules
- Derived offer state on every list query
"""

import pytest

from nftloans import (
    OfferState, LoanState,
    query_contract_info, query_borrower_info, query_collateral_info,
    query_collaterals, query_all_collaterals, query_offer_info,
    query_offers, query_lender_offers,
    BorrowerNotFound, LoanNotFound, OfferNotFound,
    DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT,
)
from nftloans.query import page_limit

from tests.conftest import (
    BORROWER, LENDER, LENDER_2, NFT, NFT_2, SG_NFT,
    list_collateral, place_offer,
)


class TestPageLimit:
    def test_default(self):
        assert page_limit(None) == DEFAULT_QUERY_LIMIT == 10

    def test_capped(self):
        assert page_limit(1000) == MAX_QUERY_LIMIT == 150

    def test_explicit(self):
        assert page_limit(3) == 3


class TestInfoQueries:
    def test_contract_info(self, book):
        assert query_contract_info(book).name == "nft-loans"

    def test_borrower_info(self, engine, book):
        list_collateral(engine)
        list_collateral(engine, tokens=[NFT_2])
        assert query_borrower_info(book, BORROWER).last_collateral_id == 1

    def test_unknown_borrower(self, book):
        with pytest.raises(BorrowerNotFound):
            query_borrower_info(book, "nobody")

    def test_collateral_info(self, engine, book):
        loan_id = list_collateral(engine)
        assert query_collateral_info(book, BORROWER, loan_id).state == LoanState.PUBLISHED
        with pytest.raises(LoanNotFound):
            query_collateral_info(book, BORROWER, 5)

    def test_offer_info(self, engine, book):
        loan_id = list_collateral(engine)
        offer_id = place_offer(engine, loan_id=loan_id)
        response = query_offer_info(book, offer_id)
        assert response.global_offer_id == "1"
        assert response.offer_info.lender == LENDER
        with pytest.raises(OfferNotFound):
            query_offer_info(book, "99")


class TestCollateralQueries:
    def test_borrower_collaterals_newest_first(self, engine, book):
        for token in (NFT, NFT_2, SG_NFT):
            list_collateral(engine, tokens=[token])

        response = query_collaterals(book, BORROWER)
        assert [c.loan_id for c in response.collaterals] == [2, 1, 0]
        assert response.next_collateral is None

    def test_borrower_collaterals_paging(self, engine, book):
        for token in (NFT, NFT_2, SG_NFT):
            list_collateral(engine, tokens=[token])

        first = query_collaterals(book, BORROWER, limit=2)
        assert [c.loan_id for c in first.collaterals] == [2, 1]
        assert first.next_collateral == 1

        second = query_collaterals(book, BORROWER, start_after=first.next_collateral, limit=2)
        assert [c.loan_id for c in second.collaterals] == [0]
        assert second.next_collateral is None

    def test_no_collaterals(self, book):
        response = query_collaterals(book, "nobody")
        assert response.collaterals == ()
        assert response.next_collateral is None

    def test_all_collaterals(self, engine, book):
        list_collateral(engine)
        list_collateral(engine, tokens=[NFT_2])
        list_collateral(engine, borrower=LENDER_2)

        response = query_all_collaterals(book)
        keys = [(c.borrower, c.loan_id) for c in response.collaterals]
        assert keys == [(LENDER_2, 0), (BORROWER, 1), (BORROWER, 0)]
        assert response.next_collateral == (BORROWER, 0)

        after = query_all_collaterals(book, start_after=(BORROWER, 1))
        assert [(c.borrower, c.loan_id) for c in after.collaterals] == [(BORROWER, 0)]

    def test_all_collaterals_empty(self, book):
        response = query_all_collaterals(book)
        assert response.collaterals == ()
        assert response.next_collateral is None


class TestOfferQueries:
    def test_numeric_descending_order(self, engine, book):
        """Ids sort as numbers: "11" comes before "9"."""
        loan_id = list_collateral(engine)
        for _ in range(11):
            place_offer(engine, loan_id=loan_id)

        first = query_offers(book, BORROWER, loan_id)
        ids = [o.global_offer_id for o in first.offers]
        assert ids == ["11", "10", "9", "8", "7", "6", "5", "4", "3", "2"]
        assert first.next_offer == "2"

        second = query_offers(book, BORROWER, loan_id, start_after=first.next_offer)
        assert [o.global_offer_id for o in second.offers] == ["1"]
        assert second.next_offer == "1"

    def test_offers_carry_derived_state(self, engine, book):
        loan_id = list_collateral(engine)
        first = place_offer(engine, loan_id=loan_id)
        second = place_offer(engine, lender=LENDER_2, loan_id=loan_id)
        engine.accept_offer(BORROWER, second)

        states = {o.global_offer_id: o.offer_info.state for o in query_offers(book, BORROWER, loan_id).offers}
        assert states == {first: OfferState.REFUSED, second: OfferState.ACCEPTED}

    def test_lender_offers_carry_derived_state(self, engine, book):
        loan_id = list_collateral(engine)
        first = place_offer(engine, loan_id=loan_id)
        second = place_offer(engine, lender=LENDER_2, loan_id=loan_id)
        engine.accept_offer(BORROWER, second)

        response = query_lender_offers(book, LENDER)
        assert [o.global_offer_id for o in response.offers] == [first]
        assert response.offers[0].offer_info.state == OfferState.REFUSED

    def test_lender_offers_across_collaterals(self, engine, book):
        a = list_collateral(engine)
        b = list_collateral(engine, tokens=[NFT_2])
        place_offer(engine, loan_id=a)
        place_offer(engine, lender=LENDER_2, loan_id=a)
        place_offer(engine, loan_id=b)

        response = query_lender_offers(book, LENDER, limit=1)
        assert [o.global_offer_id for o in response.offers] == ["3"]
        assert response.next_offer == "3"
        rest = query_lender_offers(book, LENDER, start_after="3")
        assert [o.global_offer_id for o in rest.offers] == ["1"]

    def test_no_offers(self, book):
        response = query_lender_offers(book, LENDER)
        assert response.offers == ()
        assert response.next_offer is None

    def test_non_numeric_cursor(self, engine, book):
        loan_id = list_collateral(engine)
        place_offer(engine, loan_id=loan_id)
        with pytest.raises(OfferNotFound):
            query_offers(book, BORROWER, loan_id, start_after="latest")
        with pytest.raises(OfferNotFound):
            query_lender_offers(book, LENDER, start_after="")
