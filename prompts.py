import json
from typing import Any

from errors import InvalidPromptTypeError
from models import PromptType
from utils import format_change


CHAT_SYSTEM_PROMPT = """You are an expert Web3 financial advisor and analytics assistant named \
"NFT Insights AI". You have access to BitsCrunch APIs for comprehensive NFT/WEB3 data analysis.

**CRITICAL INSTRUCTION: TOOL USAGE**
- You MUST use the `queryNFTData` tool to answer any user query about NFT or token data.
- NEVER respond with placeholder text like "[This section will display data...]".
- When a detailed report is requested, you MUST make all the required function calls \
simultaneously. Do not explain what you are going to do; just do it by calling the tools.
- Your final text response should only be generated AFTER all tool calls have been made and \
their results have been provided back to you.

IMPORTANT PARAMETER RULES:
- The API uses different parameter names for wallet addresses depending on the endpoint:
  - Use `wallet_address` for `wallet-score`.
  - Use `wallet` for `wallet-metrics` and `wallet-balance-nft`.
  - Use `address` for `wallet-balance-token` and `token-balance`.
- For collection-specific endpoints, use "contract_address".
- For token-specific endpoints, use "token_address".
- Common aliases: eth=ethereum, matic=polygon, avax=avalanche, bnb/bsc=binance, sol=solana, btc=bitcoin.

**Detailed Report Generation:**
- When a user asks for a "detailed report", "full analysis", "more information", or \
"complete information" about an NFT collection or a specific NFT, make multiple, simultaneous \
calls to `queryNFTData`:
  - `collection-metadata`
  - `collection-analytics` (use `time_range: "30d"`)
  - `collection-scores` (use `time_range: "30d"`)
  - `collection-whales` (use `time_range: "30d"`)
- If a `token_id` is also provided, add `nft-metadata`, `nft-price-estimate` and `nft-scores`.
- Your final response should be a cohesive summary of all fetched data points, mentioning \
that a detailed report is being displayed.

**Example:**
- User: "Is BAYC #8817 a good buy right now?"
- Action: `queryNFTData({ endpoint: 'collection-floor-price', contract_address: \
'0xBC4CA0EdA7647A8aB7C2061c2E118A18a936f13D' })` and `queryNFTData({ endpoint: \
'nft-price-estimate', contract_address: '0xBC4CA0EdA7647A8aB7C2061c2E118A18a936f13D', \
token_id: '8817' })`

When asked for NFT or Token data:
1. Find the most appropriate endpoint and extract the required parameters from the query.
2. If a user asks for general investment advice or "what to buy" without naming a \
collection, use `nft-top-deals`.
3. If you previously listed items (top deals, collections) and the user asks about one of \
them, reuse the contract_address and blockchain from the conversation history.
4. If required parameters are missing and not found in history, ask the user for them.
5. Present the results in a clear, user-friendly format.

Buy/sell recommendations:
- NFTs: compare `collection-floor-price` with `nft-price-estimate` (single NFT) or \
`collection-price-estimate` (collection). Tokens: compare `token-metrics` current price with \
`token-price-prediction`.
- Estimate significantly higher → BUY; significantly lower → SELL; similar → HOLD or NEUTRAL.
- Always start the recommendation line with \
"RECOMMENDATION: [BUY/SELL/HOLD/NEUTRAL] - [Reason]".

Market sentiment:
- For analytics endpoints, read the `change` and `trend` values: rising volume, sales or \
prices means bullish, falling means bearish, mixed or flat means neutral. Explain which \
numbers support the sentiment.

When you need the user to choose (blockchain, time range, insight type), list the options \
plainly, e.g. "Which time range would you like? (e.g., 24h, 7d, 30d)"."""


SUMMARY_SYSTEM_PROMPT = (
    "You are an expert financial analyst and blockchain specialist. "
    "Provide concise, professional, and actionable insights."
)


WALLET_SUMMARY_PROMPT = """Analyze the following wallet data and provide a concise summary of its \
holdings, risk profile, and overall financial standing. Highlight key strengths and weaknesses.
Wallet Address: {wallet_address}
NFT Holdings: {nft_holdings}
ERC20 Holdings: {erc20_holdings}
Wallet Score: {wallet_score}
Total Asset Value: ${total_assets_value:.2f}"""


NFT_RECOMMENDATION_PROMPT = """Based on the following NFT metadata and estimated price, provide a \
buy/sell recommendation. Consider rarity, attributes, and current market estimate. If the price \
estimate is low or high, suggest why.
NFT Name: {collection_name}
Token ID: {token_id}
Description: {description}
Image URL: {image_url}
Rarity Score: {rarity_score}
Estimated Price (USD): {price_estimate_usd}
Attributes: {attributes}"""


TOKEN_RECOMMENDATION_PROMPT = """Based on the following token data and historical prices, provide \
a buy/sell recommendation. Analyze the trend and suggest potential actions.
Token Symbol: {token_symbol}
Token Name: {token_name}
Current Quantity: {quantity}
Current USD Value: {usd_value}
Historical Prices (Date, Price): {historical_prices}"""


MARKET_ANALYTICS_PROMPT = """As a financial advisor, analyze the following 24-hour NFT market \
analytics data. Provide a concise market summary and an analysis of the market sentiment.
- IMPORTANT: The entire response must be very concise, limited to a maximum of 3-4 lines.
- Base your sentiment (bullish, bearish, neutral) on the change percentages.
- Explain your reasoning clearly, e.g. "The market appears bullish due to a significant 15% \
increase in sales volume."

Data:
- Total Volume (USD): {volume} (Change: {volume_change})
- Total Sales: {sales} (Change: {sales_change})
- Total Transactions: {transactions} (Change: {transactions_change})"""


NFT_REPORT_PROMPT = """Analyze the following detailed NFT report. Provide a comprehensive yet \
concise summary covering the collection's market position, price analysis, key scores, and \
recent trends. If it's a specific NFT, include insights on its value relative to the collection \
floor. Conclude with a final verdict or outlook. Do not state that data is missing if it is \
provided as "N/A"; simply work with the data you have.

Report Data:
{report_content}"""


# ── Builders ──────────────────────────────────────────────────────────────────


def _na(value: Any) -> str:
    if value is None or value == "":
        return "N/A"
    return str(value)


def _num(value: Any, fmt: str) -> str:
    try:
        return fmt.format(float(value))
    except (TypeError, ValueError):
        return "N/A"


def _obj(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _rows(value: Any) -> list[dict]:
    """Dict items of a list; anything else in client data is ignored."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _summarize_trend(trends: Any, key: str) -> str:
    if not isinstance(trends, list) or len(trends) < 2:
        return "Not available."
    try:
        start = float(trends[0][key])
        end = float(trends[-1][key])
    except (KeyError, TypeError, ValueError):
        return "Not available."
    percent = (end - start) / start * 100 if start else 0.0
    sign = "+" if percent >= 0 else ""
    return f"Trend from {start:,.2f} to {end:,.2f} ({sign}{percent:.2f}%)."


def _wallet_summary(data: dict) -> str:
    nfts = [
        {
            "name": nft.get("collection_name"),
            "id": nft.get("token_id"),
            "price_estimate_usd": nft.get("price_estimate_usd"),
        }
        for nft in _rows(data.get("nftHoldings"))
    ]
    tokens = [
        {
            "symbol": token.get("token_symbol"),
            "quantity": token.get("quantity"),
            "usd_value": token.get("usd_value"),
        }
        for token in _rows(data.get("erc20Holdings"))
    ]
    try:
        total = float(data.get("totalAssetsValue") or 0)
    except (TypeError, ValueError):
        total = 0.0
    return WALLET_SUMMARY_PROMPT.format(
        wallet_address=data.get("walletAddress", "N/A"),
        nft_holdings=json.dumps(nfts),
        erc20_holdings=json.dumps(tokens),
        wallet_score=json.dumps(data.get("walletScore"), default=str),
        total_assets_value=total,
    )


def _nft_recommendation(data: dict) -> str:
    return NFT_RECOMMENDATION_PROMPT.format(
        collection_name=_na(data.get("collection_name")),
        token_id=_na(data.get("token_id")),
        description=_na(data.get("description")),
        image_url=_na(data.get("image_url")),
        rarity_score=_na(data.get("rarity_score")),
        price_estimate_usd=_na(data.get("price_estimate_usd")),
        attributes=json.dumps(data.get("attributes") or [], default=str),
    )


def _token_recommendation(data: dict) -> str:
    prices = [
        {"date": p.get("date"), "price": p.get("price")}
        for p in _rows(data.get("historicalPrices"))
    ]
    return TOKEN_RECOMMENDATION_PROMPT.format(
        token_symbol=_na(data.get("token_symbol")),
        token_name=_na(data.get("token_name")),
        quantity=_na(data.get("quantity")),
        usd_value=_na(data.get("usd_value")),
        historical_prices=json.dumps(prices),
    )


def _market_analytics(data: dict) -> str:
    return MARKET_ANALYTICS_PROMPT.format(
        volume=_num(data.get("volume"), "{:.2f}"),
        volume_change=format_change(data.get("volume_change")),
        sales=_na(data.get("sales")),
        sales_change=format_change(data.get("sales_change")),
        transactions=_na(data.get("transactions")),
        transactions_change=format_change(data.get("transactions_change")),
    )


def _nft_report(data: dict) -> str:
    metadata = _obj(data.get("collectionMetadata"))
    analytics = _obj(data.get("collectionAnalytics"))
    scores = _obj(data.get("collectionScores"))
    whales = _obj(data.get("collectionWhales"))
    trends = data.get("collectionTrends")

    lines = [
        f"**Collection:** {_na(metadata.get('collection_name'))}",
        f"**Description:** {_na(metadata.get('description'))}",
        f"**Total Supply:** {_num(metadata.get('distinct_nft_count'), '{:,.0f}')}",
        "",
        "**30-Day Analytics:**",
        f"- Volume: ${_num(analytics.get('volume'), '{:,.2f}')}",
        f"- Sales: {_num(analytics.get('sales'), '{:,.0f}')}",
        f"- Floor Price: ${_num(analytics.get('floor_price_usd'), '{:.2f}')}",
        "",
        "**Collection Scores:**",
        f"- Market Cap: ${_num(scores.get('marketcap'), '{:,.2f}')}",
        f"- Average Price: ${_num(scores.get('price_avg'), '{:.2f}')}",
        f"- Price Ceiling: ${_num(scores.get('price_ceiling'), '{:.2f}')}",
        "",
        "**Whale Activity:**",
        f"- Whale Holders: {_na(whales.get('whale_holders'))}",
        f"- Unique Buyers: {_na(whales.get('unique_buy_wallets'))}",
        f"- Unique Sellers: {_na(whales.get('unique_sell_wallets'))}",
        "",
        "**30-Day Trends:**",
        f"- Volume Trend: {_summarize_trend(trends, 'volume')}",
        f"- Sales Trend: {_summarize_trend(trends, 'sales')}",
        f"- Transactions Trend: {_summarize_trend(trends, 'transactions')}",
    ]

    if data.get("isSpecificNft"):
        nft_metadata = _obj(data.get("nftMetadata"))
        estimate = _obj(data.get("nftPriceEstimate"))
        lines += [
            "",
            f"**Specific NFT Analysis (Token ID: {_na(nft_metadata.get('token_id'))}):**",
            f"- Estimated Price: ${_num(estimate.get('price_estimate'), '{:.2f}')}",
            f"- Recommendation: {_na(data.get('recommendation'))}",
        ]

    return NFT_REPORT_PROMPT.format(report_content="\n".join(lines))


_BUILDERS = {
    PromptType.WALLET_SUMMARY: _wallet_summary,
    PromptType.NFT_RECOMMENDATION: _nft_recommendation,
    PromptType.TOKEN_RECOMMENDATION: _token_recommendation,
    PromptType.MARKET_ANALYTICS_SUMMARY: _market_analytics,
    PromptType.NFT_REPORT_SUMMARY: _nft_report,
}


def build_summary_prompt(prompt_type: str, report_data: dict) -> str:
    """Render the summary prompt for ``prompt_type`` from client report data."""
    try:
        builder = _BUILDERS[PromptType(prompt_type)]
    except ValueError:
        raise InvalidPromptTypeError(
            "Invalid prompt type", details={"promptType": prompt_type}
        ) from None
    return builder(_obj(report_data))
