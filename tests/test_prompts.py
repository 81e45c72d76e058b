"""Tests for summary prompt rendering."""

import pytest

from errors import InvalidPromptTypeError
from prompts import build_summary_prompt


class TestBuildSummaryPrompt:
    """Prompt templates filled from client report data."""

    def test_invalid_prompt_type(self):
        with pytest.raises(InvalidPromptTypeError) as exc:
            build_summary_prompt("poem", {})
        assert exc.value.status_code == 400
        assert exc.value.details == {"promptType": "poem"}

    def test_market_analytics_formats_changes(self):
        prompt = build_summary_prompt("market_analytics_summary", {
            "volume": "12345.678",
            "volume_change": 0.153,
            "sales": 321,
            "sales_change": -0.05,
            "transactions": 999,
        })

        assert "Total Volume (USD): 12345.68 (Change: 15.30%)" in prompt
        assert "Total Sales: 321 (Change: -5.00%)" in prompt
        assert "Total Transactions: 999 (Change: N/A)" in prompt

    def test_wallet_summary(self):
        prompt = build_summary_prompt("wallet_summary", {
            "walletAddress": "0xabc",
            "nftHoldings": [{"collection_name": "Doodles", "token_id": "7", "extra": "x"}],
            "erc20Holdings": [{"token_symbol": "USDC", "quantity": 10, "usd_value": 10}],
            "walletScore": {"wallet_score": 80},
            "totalAssetsValue": 1234.5,
        })

        assert "Wallet Address: 0xabc" in prompt
        assert '"name": "Doodles"' in prompt
        assert "extra" not in prompt
        assert "Total Asset Value: $1234.50" in prompt

    def test_nft_recommendation_missing_fields(self):
        prompt = build_summary_prompt("nft_recommendation", {"collection_name": "Azuki"})

        assert "NFT Name: Azuki" in prompt
        assert "Token ID: N/A" in prompt
        assert "Attributes: []" in prompt

    def test_token_recommendation(self):
        prompt = build_summary_prompt("token_recommendation", {
            "token_symbol": "WETH",
            "historicalPrices": [{"date": "2024-01-01", "price": 3000, "volume": 1}],
        })

        assert "Token Symbol: WETH" in prompt
        assert '{"date": "2024-01-01", "price": 3000}' in prompt

    def test_nft_report_summary(self):
        prompt = build_summary_prompt("nft_report_summary", {
            "collectionMetadata": {"collection_name": "BAYC", "distinct_nft_count": 10000},
            "collectionAnalytics": {"floor_price_usd": "100"},
            "collectionTrends": [
                {"date": "2024-01-01", "volume": 100, "sales": 1, "transactions": 2},
                {"date": "2024-01-02", "volume": 150, "sales": 1, "transactions": 2},
            ],
            "isSpecificNft": True,
            "nftMetadata": {"token_id": "8817"},
            "nftPriceEstimate": {"price_estimate": 130},
            "recommendation": "Strong Buy",
        })

        assert "**Collection:** BAYC" in prompt
        assert "**Total Supply:** 10,000" in prompt
        assert "- Floor Price: $100.00" in prompt
        assert "- Market Cap: $N/A" in prompt
        assert "Volume Trend: Trend from 100.00 to 150.00 (+50.00%)." in prompt
        assert "Specific NFT Analysis (Token ID: 8817)" in prompt
        assert "- Recommendation: Strong Buy" in prompt

    def test_nft_report_without_specific_nft(self):
        prompt = build_summary_prompt("nft_report_summary", {"collectionTrends": []})

        assert "Specific NFT Analysis" not in prompt
        assert "Volume Trend: Not available." in prompt

    def test_malformed_nested_values_are_ignored(self):
        prompt = build_summary_prompt("nft_report_summary", {
            "collectionMetadata": "BAYC",
            "collectionScores": ["not", "a", "dict"],
            "isSpecificNft": True,
            "nftPriceEstimate": 130,
        })

        assert "**Collection:** N/A" in prompt
        assert "- Market Cap: $N/A" in prompt
        assert "- Estimated Price: $N/A" in prompt

    def test_non_dict_list_items_are_skipped(self):
        prompt = build_summary_prompt("wallet_summary", {
            "nftHoldings": [1, {"collection_name": "Doodles"}, "x"],
            "erc20Holdings": "USDC",
        })

        assert '"name": "Doodles"' in prompt
        assert "ERC20 Holdings: []" in prompt
