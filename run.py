#!/usr/bin/env python3
"""
Script principal para executar o otimizador ProfileCut pela linha de comando
"""

import sys
import json
import logging
import argparse
from pathlib import Path

from profilecut import EngineSettings, ProfileCutOptimizer, configure_logging
from profilecut.models import (
    AlgorithmMode, AlgorithmType, Constraints, MaterialStockLength, OptimizationItem,
    OptimizationRequest, OptimizationResult, PerformanceSettings,
)

logger = logging.getLogger("profilecut.run")


def create_sample_request() -> OptimizationRequest:
    """Cria uma requisição de exemplo para demonstração"""

    items = [
        OptimizationItem(work_order_id="OS-101", profile_type="AL-40x40", length=1200, quantity=6),
        OptimizationItem(work_order_id="OS-101", profile_type="AL-40x40", length=800, quantity=8),
        OptimizationItem(work_order_id="OS-102", profile_type="AL-40x40", length=600, quantity=10),
        OptimizationItem(work_order_id="OS-102", profile_type="AL-20x20", length=450, quantity=12),
    ]

    stocks = [
        MaterialStockLength(profile_type="AL-40x40", stock_length=6000, cost_per_stock=150.0),
        MaterialStockLength(profile_type="AL-40x40", stock_length=4000, cost_per_stock=110.0),
        MaterialStockLength(profile_type="AL-20x20", stock_length=3000, availability=5, cost_per_stock=45.0),
    ]

    return OptimizationRequest(
        items=items,
        material_stock_lengths=stocks,
        constraints=Constraints(kerf_width=3, start_safety=5, end_safety=5),
        performance=PerformanceSettings(population_size=40, generations=60),
    )


def load_request(path: str) -> OptimizationRequest:
    """Lê uma requisição JSON (camelCase ou snake_case)"""
    with open(path, "r", encoding="utf-8") as f:
        return OptimizationRequest.model_validate(json.load(f))


def print_summary(result: OptimizationResult) -> None:
    """Exibe o resumo do resultado"""
    if not result.success:
        print(f"❌ Falha na otimização [{result.error_code}]: {result.error_message}")
        return

    print(f"\n✅ Otimização concluída ({result.algorithm.value}, {result.algorithm_mode.value})")
    print(f"📊 Eficiência: {result.efficiency:.1f}% ({result.efficiency_category})")
    print(f"🗑️  Desperdício: {result.total_waste:.1f}mm ({result.waste_percentage:.1f}%)")
    print(f"📦 Barras utilizadas: {result.stock_count}")
    print(f"💰 Custo total: {result.total_cost:.2f}")
    print(f"⚡ Tempo de processamento: {result.execution_time:.1f}ms")

    print(f"\n📋 Resumo dos cortes:")
    for cut in result.cuts:
        pieces = ", ".join(f"{s.length:g}" for s in cut.segments)
        mixed = " [misto]" if cut.is_mixed else ""
        print(f"  {cut.index + 1}. {cut.profile_type} {cut.stock_length:g}mm: {pieces} "
              f"(sobra {cut.remaining_length:.1f}mm){mixed}")

    if result.pareto_front:
        print(f"\n📈 Fronteira de Pareto: {result.front_size} soluções")
        for point in result.pareto_front:
            knee = " ← recomendada" if point.is_knee else ""
            print(f"     • execução {point.run}: eficiência {point.efficiency:.1f}%, "
                  f"custo {point.total_cost:.2f}, {point.stock_count} barras{knee}")

    if result.recommendations:
        print(f"\n💡 Recomendações:")
        for rec in result.recommendations:
            print(f"     • [{rec.priority.value}] {rec.message}")


def main():
    """Função principal"""

    parser = argparse.ArgumentParser(
        description="ProfileCut - Otimização de Cortes de Perfis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exemplos de uso:
  python run.py --demo                              # Executa demonstração
  python run.py --input pedido.json                 # Otimiza uma requisição JSON
  python run.py --demo --algorithm genetic --mode advanced
  python run.py --input pedido.json --output resultado.json
        """
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument('--demo', action='store_true', help='Usa a requisição de exemplo (padrão)')
    source.add_argument('--input', metavar='FILE', help='Arquivo JSON com a requisição')

    parser.add_argument(
        '--algorithm',
        choices=[a.value for a in AlgorithmType],
        help='Sobrescreve o algoritmo da requisição'
    )
    parser.add_argument(
        '--mode',
        choices=[m.value for m in AlgorithmMode],
        help='Sobrescreve o modo de execução'
    )
    parser.add_argument('--output', metavar='FILE', help='Grava o resultado completo em JSON')
    parser.add_argument(
        '--log-level',
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Nível de log (padrão: PROFILECUT_LOG_LEVEL ou INFO)'
    )

    args = parser.parse_args()
    settings = EngineSettings.from_env()
    configure_logging(args.log_level or settings.log_level)

    try:
        request = load_request(args.input) if args.input else create_sample_request()
        if args.algorithm:
            request.algorithm = AlgorithmType(args.algorithm)
        if args.mode:
            request.algorithm_mode = AlgorithmMode(args.mode)

        print("🔧 ProfileCut - Otimização de Cortes")
        print("=" * 60)
        print(f"✓ {len(request.items)} itens, {len(request.material_stock_lengths)} barras de estoque")

        result = ProfileCutOptimizer(settings).optimize(request)
        print_summary(result)

        if args.output:
            Path(args.output).write_text(
                result.model_dump_json(by_alias=True, indent=2, exclude_none=True), encoding="utf-8"
            )
            print(f"\n📁 Resultado gravado em: {args.output}")

        sys.exit(0 if result.success else 1)

    except KeyboardInterrupt:
        print("\n\n👋 Execução interrompida pelo usuário")
    except (OSError, ValueError) as e:
        logger.error("Não foi possível ler a requisição: %s", e)
        sys.exit(2)


if __name__ == "__main__":
    main()
