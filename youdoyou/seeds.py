"""Demo threads for local development.

Each seed is a thread plus its messages, keyed by a short name.  Seeding is
idempotent: the thread is deleted (messages included) before it is
written again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta, timezone

from youdoyou.models import Message, MessageRole, MessageStatus, Thread
from youdoyou.services.message_store import MessageStore

logger = logging.getLogger(__name__)

JST = timezone(timedelta(hours=9), "JST")
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def jst(year: int, month: int, day: int, hour: int, minute: int) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=JST)


@dataclass
class Seed:
    thread: Thread
    messages: list[Message] = field(default_factory=list)


def _history(*turns: tuple[str, str, datetime]) -> list[Message]:
    return [
        Message(role=role, content=content, status=MessageStatus.COMPLETED, created_at=at)
        for role, content, at in turns
    ]


# Long Markdown answer with fenced code blocks, for checking that content
# survives the store and the context builder untouched.
CODEBLOCK_ANSWER = """
**Googleの「Agent Development Kit (ADK-go)」** という正確な名称の公式製品は現在存在しませんが、おそらく **「Firebase Genkit (Go SDK)」** のことを指している可能性が高いです。

Googleは現在、AIエージェント開発のためのフレームワークとして **Genkit** を強く推進しており、これがGo言語を公式にサポートしています（以前はNode.jsのみでしたが、Goのサポートが追加されました）。

もし「ADK」が別の特定のツール（例：Android Open Accessory Development Kitなど）を指している場合はお知らせください。ここでは、Googleの最新の **AIエージェント開発キットである「Genkit for Go」** について解説します。

---

### Firebase Genkit (Go) とは？

Firebase Genkitは、AI機能をアプリケーションに統合するためのオープンソースのフレームワークです。単なるAPIラッパーではなく、 **「エージェント（Agent）」** や「フロー（Flow）」を定義し、デバッグ、デプロイまでを一貫して行える開発キットです。

* **主な特徴:**
* **Go言語ネイティブ:** Goの慣習に沿った書き方が可能。
* **モデルに依存しない:** Gemini, Claude, Llamaなどをプラグインで切り替え可能。
* **開発者UI:** ローカルでエージェントの動きを可視化・テストできるGUIツールが付属。
* **フロー中心:** 入力から出力までの処理の流れ（RAG、ツール呼び出しなど）を定義しやすい。



---

### コード例：シンプルなAIエージェントの作成

以下は、GoogleのGeminiモデルを使用して、入力されたテーマについてジョークを言うシンプルなエージェント（フロー）の作成例です。

#### 1. 事前準備

まず、必要なパッケージを取得します。

```bash
go get github.com/firebase/genkit/go/...

```

#### 2. main.go の実装

```go
package main

import (
	"context"
	"fmt"
	"log"

	// Genkitのコア機能
	"github.com/firebase/genkit/go/ai"
	"github.com/firebase/genkit/go/genkit"
	
	// Google AI (Gemini) プラグイン
	"github.com/firebase/genkit/go/plugins/googleai"
)

func main() {
	ctx := context.Background()

	// 1. Google AIプラグインの初期化 (APIキーは環境変数 GOOGLE_GENAI_API_KEY に設定)
	if err := googleai.Init(ctx, nil); err != nil {
		log.Fatalf("Google AIの初期化に失敗しました: %v", err)
	}

	// 2. 使用するモデルの定義
	model := googleai.Model("gemini-1.5-flash")

	// 3. 「Flow（エージェントの処理フロー）」の定義
	// "jokeFlow" という名前でフローを登録します
	jokeFlow := genkit.DefineFlow("jokeFlow", func(ctx context.Context, subject string) (string, error) {
		
		// AIへのプロンプト作成
		prompt := fmt.Sprintf("%s についての面白いジョークを1つ言ってください。", subject)

		// AIモデルの実行
		resp, err := model.Generate(ctx, ai.NewGenerateRequest(
			ai.WithTextPrompt(prompt),
		))
		if err != nil {
			return "", err
		}

		// 結果のテキストを返す
		return resp.Text(), nil
	})

	// 4. Genkitサーバーの起動 (ローカル開発用UIやAPIサーバーとして機能)
	// これにより、CLIやGUIからこのフローを呼び出せるようになります
	if err := genkit.Init(ctx, nil); err != nil {
		log.Fatalf("Genkitの起動に失敗しました: %v", err)
	}

	// 以下はコード内で直接実行する場合の例
	/*
	result, err := jokeFlow.Run(ctx, "バナナ")
	if err != nil {
		log.Fatal(err)
	}
	fmt.Println("AIの回答:", result)
	*/
}

```

#### 3. 実行とテスト

このコードを実行すると、Genkitの開発者UI（Developer UI）を起動してブラウザでテストできます。

```bash
# Genkit CLIを使ってUIを起動 (事前にCLIのインストールが必要)
genkit start -- go run main.go

```

---

### なぜこれが「エージェント開発」に向いているのか？

単にAPIを叩くだけなら標準ライブラリでも可能ですが、Genkit（ADK的な役割）を使うと以下のことが簡単に実装できます。

1. **ツール使用 (Function Calling):**
エージェントに「天気予報API」や「カレンダー検索」などのGo関数を渡し、AIが必要なときにそのGo関数を自律的に実行する仕組みを簡単に書けます。
2. **履歴の管理:**
チャットボットのような会話履歴の保持をサポートします。
3. **構造化出力:**
AIの回答をただのテキストではなく、Goの `struct`（JSON）として確実に受け取る設定が簡単です。

### 補足：Vertex AI SDK for Go

もしフレームワーク（Genkit）を使わず、もっと低レイヤーでGoogle CloudのAIをGoで扱いたい場合は、 **Vertex AI Go SDK** を使用します。こちらは「キット」というよりは純粋なクライアントライブラリです。

```bash
go get cloud.google.com/go/vertexai/genai

```

### 次のステップ

Genkitについてより深く知りたい、あるいは「ADK-go」が実はIoTデバイス向けのGoogleツール（Android Accessory）のことだった、などあれば教えてください。

**ツールの使い方（Function Calling）を実装するコード例を見たいですか？**
"""


SEEDS: dict[str, Seed] = {
    "basic": Seed(
        thread=Thread(
            id="basic-thread",
            user_id="demo-user-001",
            first_message="こんにちは！",
            last_read_at=jst(2025, 12, 20, 14, 11),
            reply_count=3,
            memorized_until=EPOCH,
            created_at=jst(2025, 12, 20, 14, 0),
        ),
        messages=_history(
            (MessageRole.USER, "こんにちは！", jst(2025, 12, 20, 14, 0)),
            (
                MessageRole.ASSISTANT,
                "こんにちは！何かお手伝いできることはありますか？",
                jst(2025, 12, 20, 14, 1),
            ),
            (MessageRole.USER, "今日の天気はどうかな？", jst(2025, 12, 20, 14, 5)),
            (
                MessageRole.ASSISTANT,
                "申し訳ありませんが、私はリアルタイムの天気情報に直接アクセスすることはできません。"
                "お住まいの地域の天気予報アプリをご確認ください。",
                jst(2025, 12, 20, 14, 6),
            ),
            (
                MessageRole.USER,
                "わかった、ありがとう。じゃあ、何か面白い雑学を教えて。",
                jst(2025, 12, 20, 14, 10),
            ),
            (
                MessageRole.ASSISTANT,
                "シロクマの毛は白ではなく、実は透明です。中が空洞で光を反射するため白く見えるんですよ。",
                jst(2025, 12, 20, 14, 11),
            ),
        ),
    ),
    "private": Seed(
        thread=Thread(
            id="private-project-thread",
            user_id="demo-user-001",
            first_message="次の新製品プロジェクト「Project X」について内密に相談したい。",
            last_read_at=jst(2025, 12, 20, 15, 30),
            reply_count=3,
            is_private=True,
            memorized_until=EPOCH,
            created_at=jst(2025, 12, 20, 15, 0),
        ),
        messages=_history(
            (
                MessageRole.USER,
                "次の新製品プロジェクト「Project X」について内密に相談したい。",
                jst(2025, 12, 20, 15, 0),
            ),
            (
                MessageRole.ASSISTANT,
                "かしこまりました。「Project X」に関する情報は機密事項として扱います。"
                "具体的にどのような内容でお困りでしょうか？",
                jst(2025, 12, 20, 15, 5),
            ),
            (
                MessageRole.USER,
                "まずは競合他社の分析から始めたい。A社とB社の最新の動向をまとめてくれるかな？",
                jst(2025, 12, 20, 15, 10),
            ),
            (
                MessageRole.ASSISTANT,
                "承知いたしました。A社はAI統合ツールを発表し、B社はハードウェアの効率化に注力しています。"
                "比較レポートを作成しますので、少々お待ちください。",
                jst(2025, 12, 20, 15, 15),
            ),
        ),
    ),
    "codeblock": Seed(
        thread=Thread(
            id="codeblock-thread",
            user_id="demo-user-001",
            first_message="GoogleのAgentDevelopmentKit ADK-goについて詳しく教えて。コード例も見せて。",
            last_read_at=jst(2025, 12, 20, 14, 10),
            reply_count=1,
            memorized_until=EPOCH,
            created_at=jst(2025, 12, 20, 14, 0),
        ),
        messages=[
            Message(
                role=MessageRole.USER,
                content="GoogleのAgentDevelopmentKit ADK-goについて詳しく教えて。コード例も見せて。",
                status=MessageStatus.COMPLETED,
                created_at=jst(2025, 12, 20, 14, 0),
            ),
            Message(
                role=MessageRole.ASSISTANT,
                content=CODEBLOCK_ANSWER,
                status=MessageStatus.RECEIVED,
                created_at=jst(2025, 12, 20, 14, 1),
            ),
        ],
    ),
}


def seed_names(name: str) -> list[str]:
    """Expand ``all`` to every registered seed; reject unknown names."""
    if name == "all":
        return list(SEEDS)
    if name not in SEEDS:
        raise KeyError(f"Seed {name!r} not found (available: {', '.join(SEEDS)})")
    return [name]


def apply_seed(store: MessageStore, name: str) -> list[str]:
    """Replace the seed's thread in *store*.  Returns the saved message ids."""
    seed = SEEDS[name]
    thread_id = seed.thread.id
    store.delete_thread(thread_id)
    store.create_thread(seed.thread)
    saved = [store.save_message(thread_id, message) for message in seed.messages]
    logger.info("Seeded thread %s with %d message(s)", thread_id, len(saved))
    return saved
