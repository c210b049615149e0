"""
loan_example.py - Step-by-Step NFT-Collateralized Loan Example

Demonstrates the complete lifecycle of a peer-to-peer NFT loan:
1. Setup: Instantiate the contract, mint an NFT, fund wallets
2. Listing: Borrower deposits the NFT as collateral
3. Offers: Two lenders compete; their principal is held in escrow
4. Acceptance: Borrower picks one; the other offer reads as refused
5. Settlement: Repayment with a treasury fee, then a second loan that defaults

Run this file directly:
    python loan_example.py
"""

from datetime import datetime
from nftloans import (
    # Setup
    LoanBook, LoanEngine, instantiate, MessageInfo,

    # Values
    Coin, Cw721Coin, LoanTerms,

    # Queries
    query_offers, query_collateral_info,

    # Errors
    LoanError,
)


DENOM = "luna"


def show_balances(book: LoanBook, *accounts: str) -> None:
    for account in accounts:
        print(f"  {account:10s} {book.get_balance(account, DENOM):>8,} {DENOM}")


def show_offers(book: LoanBook, borrower: str, loan_id: int) -> None:
    for entry in query_offers(book, borrower, loan_id).offers:
        offer = entry.offer_info
        print(f"  offer {entry.global_offer_id}: {offer.lender:6s} "
              f"{offer.terms.principal!r} + {offer.terms.interest} interest "
              f"-> {offer.state.value}")


def main():
    print("=" * 70)
    print("NFT-COLLATERALIZED LOAN - COMPLETE LIFECYCLE EXAMPLE")
    print("=" * 70)

    # =========================================================================
    # STEP 1: SETUP
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 1: SETUP")
    print("=" * 70)

    alice, bob, carol, treasury = "alice", "bob", "carol", "treasury"
    config = instantiate(MessageInfo("admin"), "nft-loans", treasury, "0.05")
    book = LoanBook("example", config, initial_time=datetime(2025, 1, 1), verbose=False, test_mode=True)
    engine = LoanEngine(book)

    punk = Cw721Coin("punks", "58")
    book.mint_nft(punk, alice)
    for account in (alice, bob, carol):
        book.set_balance(account, DENOM, 10_000)

    print(f"Fee rate: {config.fee_rate} of interest goes to {treasury}")
    print(f"Alice owns {punk.address}/{punk.token_id}")
    show_balances(book, alice, bob, carol)

    # =========================================================================
    # STEP 2: LISTING
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 2: ALICE LISTS HER NFT")
    print("=" * 70)

    tx = engine.deposit_collateral(alice, [punk], comment="blue chip")
    loan_id = int(tx.attribute("loan_id"))
    print(f"Listing alice/{loan_id} is {query_collateral_info(book, alice, loan_id).state.value}")
    print(f"NFT is still with {book.owner_of(punk.address, punk.token_id)} until a loan starts")

    # =========================================================================
    # STEP 3: OFFERS
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 3: BOB AND CAROL MAKE OFFERS")
    print("=" * 70)

    bob_terms = LoanTerms(Coin(DENOM, 1_000), 120, 100)
    carol_terms = LoanTerms(Coin(DENOM, 1_200), 100, 50)
    bob_offer = engine.make_offer(bob, alice, loan_id, bob_terms).attribute("global_offer_id")
    carol_offer = engine.make_offer(carol, alice, loan_id, carol_terms).attribute("global_offer_id")

    show_offers(book, alice, loan_id)
    print(f"Escrow held by the contract: {book.verify_escrow()['held']}")

    # =========================================================================
    # STEP 4: ACCEPTANCE
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 4: ALICE ACCEPTS CAROL'S OFFER")
    print("=" * 70)

    engine.accept_offer(alice, carol_offer)
    show_offers(book, alice, loan_id)
    print(f"NFT now held by: {book.owner_of(punk.address, punk.token_id)}")

    print("\nBob's offer reads as refused, so he takes his escrow back:")
    engine.withdraw_refused_offer(bob, bob_offer)
    show_balances(book, alice, bob, carol)

    # =========================================================================
    # STEP 5: REPAYMENT
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 5: ALICE REPAYS")
    print("=" * 70)

    engine.advance_blocks(20)
    due = carol_terms.total_due
    tx = engine.repay_borrowed_funds(alice, loan_id, [due])
    print(f"Repaid {due!r}: lender gets {tx.attribute('lender_payback')}, "
          f"treasury gets {tx.attribute('treasury_cut')}")
    print(f"NFT back with: {book.owner_of(punk.address, punk.token_id)}")
    show_balances(book, alice, bob, carol, treasury)

    # =========================================================================
    # STEP 6: DEFAULT
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 6: A SECOND LOAN THAT DEFAULTS")
    print("=" * 70)

    short_terms = LoanTerms(Coin(DENOM, 500), 50, 10)
    tx = engine.deposit_collateral(alice, [punk], terms=short_terms)
    second_loan = int(tx.attribute("loan_id"))
    engine.accept_loan(bob, alice, second_loan)
    print(f"Bob took alice's own terms; the loan runs {short_terms.duration_in_blocks} blocks")

    try:
        engine.withdraw_defaulted_loan(bob, alice, second_loan)
    except LoanError as e:
        print(f"Too early to claim: {e}")

    engine.advance_blocks(short_terms.duration_in_blocks)
    engine.withdraw_defaulted_loan(bob, alice, second_loan)
    print(f"After the deadline the NFT goes to: {book.owner_of(punk.address, punk.token_id)}")

    result = book.verify_escrow()
    print(f"\nEscrow check: {'OK' if result['valid'] else result['discrepancies']}")
    print(f"Transactions applied: {len(book.transaction_log)}")


if __name__ == "__main__":
    main()
